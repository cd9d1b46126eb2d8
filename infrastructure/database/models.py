from sqlalchemy import (Column, Integer, String, Numeric, Boolean, Date, ForeignKey, DateTime,
                        UniqueConstraint, Index, Text)
from sqlalchemy.orm import relationship
from datetime import datetime
from infrastructure.database.connection import Base


# 1. VERSIONES DE PARÁMETROS LEGALES (inmutables, solo inserción)
class VersionParametroLegal(Base):
    __tablename__ = "versiones_parametros_legales"

    version_id = Column(String(40), primary_key=True)   # Ej: "CL-2026-02"
    nombre = Column(String(200), nullable=False)
    vigente_desde = Column(Date, nullable=False, index=True)
    vigente_hasta = Column(Date, nullable=True)
    datos_json = Column(Text, nullable=False)            # snapshot_a_dict serializado
    fecha_registro = Column(DateTime, default=datetime.now)


# 2. ESTRUCTURAS DE SUELDO (por guardia o por puesto/instalación)
class Estructura(Base):
    __tablename__ = "estructuras_sueldo"

    id = Column(Integer, primary_key=True, index=True)
    nombre = Column(String(100), nullable=False)
    sueldo_base = Column(Numeric(14, 2), nullable=False)
    colacion = Column(Numeric(14, 2), default=0)
    movilizacion = Column(Numeric(14, 2), default=0)
    # 'NINGUNA', 'AUTOMATICA' (25% con tope) o 'FIJA'
    tipo_gratificacion = Column(String(20), default="AUTOMATICA", nullable=False)
    monto_gratificacion = Column(Numeric(14, 2), default=0)
    activa = Column(Boolean, default=True)
    vigente_desde = Column(Date, nullable=True)
    vigente_hasta = Column(Date, nullable=True)

    bonos = relationship("BonoEstructura", back_populates="estructura", cascade="all, delete-orphan")


# 3. CATÁLOGO DE BONOS (nivel empresa)
class BonoCatalogo(Base):
    __tablename__ = "bonos_catalogo"

    id = Column(Integer, primary_key=True, index=True)
    codigo = Column(String(30), unique=True, nullable=False)
    nombre = Column(String(100), nullable=False)
    tipo_bono = Column(String(20), nullable=False)       # FIJO | PORCENTUAL | CONDICIONAL
    imponible = Column(Boolean, default=True)            # Afecto a cotizaciones
    tributable = Column(Boolean, default=True)           # Afecto a impuesto único
    monto_defecto = Column(Numeric(14, 2), default=0)
    porcentaje_defecto = Column(Numeric(7, 4), default=0)
    condicion_tipo = Column(String(40), nullable=True)
    condicion_valor = Column(Numeric(10, 2), default=0)
    activo = Column(Boolean, default=True)


class BonoEstructura(Base):
    __tablename__ = "bonos_estructura"

    id = Column(Integer, primary_key=True, index=True)
    estructura_id = Column(Integer, ForeignKey("estructuras_sueldo.id"), nullable=False)
    bono_catalogo_id = Column(Integer, ForeignKey("bonos_catalogo.id"), nullable=False)
    monto_override = Column(Numeric(14, 2), nullable=True)
    porcentaje_override = Column(Numeric(7, 4), nullable=True)
    activo = Column(Boolean, default=True)

    estructura = relationship("Estructura", back_populates="bonos")
    catalogo = relationship("BonoCatalogo")


# 4. INSTALACIONES Y GUARDIAS
class Instalacion(Base):
    __tablename__ = "instalaciones"

    id = Column(Integer, primary_key=True, index=True)
    nombre = Column(String(200), nullable=False)
    estructura_sueldo_id = Column(Integer, ForeignKey("estructuras_sueldo.id"), nullable=True)

    estructura = relationship("Estructura")


class Guardia(Base):
    __tablename__ = "guardias"

    id = Column(Integer, primary_key=True, index=True)
    rut = Column(String(12), unique=True, index=True, nullable=False)   # "12345678-9"
    nombres = Column(String(100), nullable=False)
    apellidos = Column(String(100), nullable=False)
    email = Column(String(100))
    estado = Column(String(20), default="ACTIVO")
    fecha_ingreso = Column(Date, nullable=True)
    fecha_termino = Column(Date, nullable=True)
    tipo_contrato = Column(String(20), default="INDEFINIDO", nullable=False)

    # Asignación de puesto y override de sueldo
    instalacion_id = Column(Integer, ForeignKey("instalaciones.id"), nullable=True)
    estructura_sueldo_id = Column(Integer, ForeignKey("estructuras_sueldo.id"), nullable=True)

    # Datos bancarios
    banco = Column(String(100))
    tipo_cuenta = Column(String(30))
    numero_cuenta = Column(String(30))

    # Datos previsionales
    afp = Column(String(30), nullable=False)
    sistema_salud = Column(String(10), default="FONASA", nullable=False)
    nombre_isapre = Column(String(50), nullable=True)
    porcentaje_isapre = Column(Numeric(7, 4), default=0)
    cargas_familiares = Column(Integer, default=0)
    asignacion_maternal = Column(Boolean, default=False)
    asignacion_invalidez = Column(Boolean, default=False)
    # Renta promedio del semestre anterior; fija el tramo de la asignación familiar
    renta_promedio_asignacion = Column(Numeric(14, 0), nullable=True)
    apv_mensual = Column(Numeric(14, 2), default=0)

    # Anticipo quincenal
    recibe_anticipo = Column(Boolean, default=False)
    monto_anticipo = Column(Numeric(14, 2), default=0)
    tope_anticipo = Column(Numeric(14, 2), default=0)

    instalacion = relationship("Instalacion")
    estructura = relationship("Estructura")

    @property
    def nombre_completo(self):
        return f"{self.nombres} {self.apellidos}".strip()


# 5. ASISTENCIA MENSUAL (interna o importada)
class AsistenciaMensual(Base):
    __tablename__ = "asistencias_mensuales"
    __table_args__ = (UniqueConstraint("guardia_id", "anio", "mes", name="uq_asistencia_guardia_periodo"),)

    id = Column(Integer, primary_key=True, index=True)
    guardia_id = Column(Integer, ForeignKey("guardias.id"), nullable=False)
    anio = Column(Integer, nullable=False)
    mes = Column(Integer, nullable=False)
    fuente = Column(String(20), default="INTERNA")       # INTERNA | IMPORTADA

    dias_mes = Column(Integer, nullable=False)
    dias_trabajados = Column(Integer, default=0)
    dias_ausente = Column(Integer, default=0)
    dias_licencia_medica = Column(Integer, default=0)
    dias_vacaciones = Column(Integer, default=0)
    dias_permiso_sin_goce = Column(Integer, default=0)
    dias_programados = Column(Integer, default=0)
    domingos_trabajados = Column(Integer, default=0)
    domingos_programados = Column(Integer, default=0)
    horas_normales = Column(Numeric(8, 2), default=0)
    horas_extra_1 = Column(Numeric(8, 2), default=0)
    horas_extra_2 = Column(Numeric(8, 2), default=0)
    horas_atraso = Column(Numeric(8, 2), default=0)
    horas_feriado = Column(Numeric(8, 2), default=0)
    detalle_json = Column(Text, nullable=True)            # [{"fecha": "2026-02-01", "codigo": "AS"}, ...]
    fecha_registro = Column(DateTime, default=datetime.now)


class Feriado(Base):
    __tablename__ = "feriados"

    id = Column(Integer, primary_key=True, index=True)
    fecha = Column(Date, unique=True, nullable=False)
    nombre = Column(String(100), nullable=False)


# 6. PERIODOS DE REMUNERACIONES Y LIQUIDACIONES
class PeriodoRemuneraciones(Base):
    __tablename__ = "periodos_remuneraciones"
    __table_args__ = (UniqueConstraint("anio", "mes", name="uq_periodo_anio_mes"),)

    id = Column(Integer, primary_key=True, index=True)
    anio = Column(Integer, nullable=False)
    mes = Column(Integer, nullable=False)
    # ABIERTO → PROCESANDO → BORRADOR → APROBADO → PAGADO
    estado = Column(String(20), default="ABIERTO", nullable=False)
    version_parametros_id = Column(String(40), ForeignKey("versiones_parametros_legales.version_id"), nullable=True)
    informe_json = Column(Text, nullable=True)
    fecha_apertura = Column(DateTime, default=datetime.now)
    fecha_aprobacion = Column(DateTime, nullable=True)
    fecha_pago = Column(DateTime, nullable=True)

    liquidaciones = relationship("Liquidacion", back_populates="periodo")

    @property
    def periodo_key(self):
        return f"{self.mes:02d}-{self.anio}"


class Liquidacion(Base):
    __tablename__ = "liquidaciones"
    __table_args__ = (UniqueConstraint("periodo_id", "guardia_id", "version", name="uq_liquidacion_version"),)

    id = Column(Integer, primary_key=True, index=True)
    periodo_id = Column(Integer, ForeignKey("periodos_remuneraciones.id"), nullable=False)
    guardia_id = Column(Integer, ForeignKey("guardias.id"), nullable=False, index=True)
    version = Column(Integer, default=1, nullable=False)
    estado = Column(String(20), default="BORRADOR", nullable=False)  # BORRADOR | APROBADA | PAGADA
    vigente = Column(Boolean, default=True, nullable=False)          # False = reemplazada por corrección

    version_parametros_id = Column(String(40), ForeignKey("versiones_parametros_legales.version_id"), nullable=False)
    fuente_asistencia = Column(String(20), nullable=False)   # INTERNA | IMPORTADA
    fuente_sueldo = Column(String(20), nullable=False)       # RUT | PUESTO

    # Copia de los valores usados y desglose canónico (JSON ordenado)
    estructura_json = Column(Text, nullable=False)
    desglose_json = Column(Text, nullable=False)
    huella = Column(String(64), nullable=False)
    alertas_json = Column(Text, default="[]")

    total_imponible = Column(Numeric(14, 0), nullable=False)
    total_no_imponible = Column(Numeric(14, 0), nullable=False)
    total_descuentos = Column(Numeric(14, 0), nullable=False)
    liquido = Column(Numeric(14, 0), nullable=False)
    costo_empleador = Column(Numeric(14, 0), nullable=False)

    motivo_correccion = Column(String(300), nullable=True)
    reemplazada_por_id = Column(Integer, ForeignKey("liquidaciones.id"), nullable=True)
    fecha_calculo = Column(DateTime, default=datetime.now)
    fecha_pago = Column(DateTime, nullable=True)

    periodo = relationship("PeriodoRemuneraciones", back_populates="liquidaciones")
    guardia = relationship("Guardia")


# Una sola liquidación no reemplazada por (periodo, guardia)
Index(
    "ux_liquidacion_vigente",
    Liquidacion.periodo_id,
    Liquidacion.guardia_id,
    unique=True,
    sqlite_where=Liquidacion.vigente == True,  # noqa: E712
    postgresql_where=Liquidacion.vigente == True,  # noqa: E712
)


class BloqueoPeriodo(Base):
    """Bloqueo consultivo: una fila por periodo en cálculo."""
    __tablename__ = "bloqueos_periodo"

    anio = Column(Integer, primary_key=True)
    mes = Column(Integer, primary_key=True)
    propietario = Column(String(100), nullable=False)
    adquirido_en = Column(DateTime, default=datetime.now)


# 7. ANTICIPOS
class ProcesoAnticipo(Base):
    __tablename__ = "procesos_anticipo"
    __table_args__ = (UniqueConstraint("anio", "mes", name="uq_anticipo_anio_mes"),)

    id = Column(Integer, primary_key=True, index=True)
    anio = Column(Integer, nullable=False)
    mes = Column(Integer, nullable=False)
    estado = Column(String(20), default="BORRADOR", nullable=False)  # BORRADOR | APROBADO | PAGADO
    fecha_creacion = Column(DateTime, default=datetime.now)
    fecha_aprobacion = Column(DateTime, nullable=True)
    fecha_pago = Column(DateTime, nullable=True)

    items = relationship("ItemAnticipo", back_populates="proceso", cascade="all, delete-orphan")


class ItemAnticipo(Base):
    __tablename__ = "items_anticipo"
    __table_args__ = (UniqueConstraint("proceso_id", "guardia_id", name="uq_item_anticipo_guardia"),)

    id = Column(Integer, primary_key=True, index=True)
    proceso_id = Column(Integer, ForeignKey("procesos_anticipo.id"), nullable=False)
    guardia_id = Column(Integer, ForeignKey("guardias.id"), nullable=False)
    monto = Column(Numeric(14, 0), nullable=False)
    tope = Column(Numeric(14, 0), nullable=False)
    estado = Column(String(20), default="BORRADOR", nullable=False)

    proceso = relationship("ProcesoAnticipo", back_populates="items")
    guardia = relationship("Guardia")
