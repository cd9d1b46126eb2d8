from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from core.domain.montos import CERO

# Códigos diarios de asistencia (formato CR / OPAI)
CODIGOS_ASISTENCIA = {
    "AS": "ASISTIO",
    "+": "DESCANSO",
    "-": "NO_APLICA",
    "F": "FALTA",
    "LME": "LICENCIA_MEDICA",
    "V1": "VACACION",
    "P1": "PERMISO_SIN_GOCE",
    "P2": "PERMISO_SIN_GOCE",
    "CA": "CAMBIO",
    "SA": "SIN_ASISTENCIA",
    "SC": "SIN_CONTROLAR",
}

TIPOS_GRATIFICACION = ("NINGUNA", "AUTOMATICA", "FIJA")
TIPOS_BONO = ("FIJO", "PORCENTUAL", "CONDICIONAL")
TIPOS_CONTRATO = ("INDEFINIDO", "PLAZO_FIJO")
SISTEMAS_SALUD = ("FONASA", "ISAPRE")


@dataclass
class BonoAplicable:
    codigo: str
    nombre: str
    tipo_bono: str  # 'FIJO', 'PORCENTUAL' o 'CONDICIONAL'
    imponible: bool = True
    tributable: bool = True
    monto: Decimal = CERO
    porcentaje: Decimal = CERO
    # Solo CONDICIONAL: 'DIAS_TRABAJADOS_MIN', 'SIN_AUSENCIAS', 'DOMINGOS_TRABAJADOS_MIN', 'SIN_ATRASOS'
    condicion_tipo: Optional[str] = None
    condicion_valor: Decimal = CERO


@dataclass
class BonoEvaluado:
    codigo: str
    nombre: str
    monto: Decimal
    imponible: bool
    tributable: bool
    cumplido: bool = True


@dataclass
class EstructuraSueldo:
    id: int
    sueldo_base: Decimal
    colacion: Decimal = CERO
    movilizacion: Decimal = CERO
    tipo_gratificacion: str = "AUTOMATICA"
    monto_gratificacion: Decimal = CERO
    activa: bool = True
    vigente_desde: Optional[date] = None
    vigente_hasta: Optional[date] = None
    bonos: list = field(default_factory=list)

    def vigente_en(self, fecha: date) -> bool:
        if not self.activa:
            return False
        if self.vigente_desde and fecha < self.vigente_desde:
            return False
        if self.vigente_hasta and fecha > self.vigente_hasta:
            return False
        return True

    def a_dict(self) -> dict:
        """Copia de los valores usados, para guardar en la liquidación."""
        return {
            "id": self.id,
            "sueldo_base": str(self.sueldo_base),
            "colacion": str(self.colacion),
            "movilizacion": str(self.movilizacion),
            "tipo_gratificacion": self.tipo_gratificacion,
            "monto_gratificacion": str(self.monto_gratificacion),
            "bonos": [
                {
                    "codigo": b.codigo, "nombre": b.nombre, "tipo_bono": b.tipo_bono,
                    "imponible": b.imponible, "tributable": b.tributable,
                    "monto": str(b.monto), "porcentaje": str(b.porcentaje),
                    "condicion_tipo": b.condicion_tipo, "condicion_valor": str(b.condicion_valor),
                }
                for b in self.bonos
            ],
        }


@dataclass
class SueldoEfectivo:
    estructura: EstructuraSueldo
    bonos: list
    fuente: str  # 'RUT' (override del guardia) o 'PUESTO' (instalación)


@dataclass
class DiaAsistencia:
    fecha: date
    codigo: str


@dataclass
class HechoAsistencia:
    guardia_id: int
    anio: int
    mes: int
    dias_mes: int
    dias_trabajados: int = 0
    dias_ausente: int = 0
    dias_licencia_medica: int = 0
    dias_vacaciones: int = 0
    dias_permiso_sin_goce: int = 0
    dias_programados: int = 0
    domingos_trabajados: int = 0
    domingos_programados: int = 0
    horas_normales: Decimal = CERO
    horas_extra_1: Decimal = CERO  # 50%
    horas_extra_2: Decimal = CERO  # 100%
    horas_atraso: Decimal = CERO
    horas_feriado: Decimal = CERO
    fecha_inicio_contrato: Optional[date] = None
    fecha_fin_contrato: Optional[date] = None
    detalle_diario: list = field(default_factory=list)
    fuente: str = "INTERNA"  # 'INTERNA' o 'IMPORTADA'


@dataclass
class PerfilPago:
    guardia_id: int
    rut: str
    nombre_completo: str
    banco: Optional[str] = None
    tipo_cuenta: Optional[str] = None
    numero_cuenta: Optional[str] = None
    email: Optional[str] = None


@dataclass
class DatosPrevisionales:
    """Afiliación del guardia que el motor necesita además del sueldo."""
    guardia_id: int
    afp: str
    sistema_salud: str = "FONASA"
    porcentaje_isapre: Decimal = CERO
    nombre_isapre: Optional[str] = None
    tipo_contrato: str = "INDEFINIDO"
    cargas_familiares: int = 0
    asignacion_maternal: bool = False
    asignacion_invalidez: bool = False
    renta_promedio_asignacion: Optional[Decimal] = None
    apv: Decimal = CERO
    fecha_ingreso: Optional[date] = None
    fecha_termino: Optional[date] = None
