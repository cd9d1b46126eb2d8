import calendar
import json
from datetime import date

from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.domain.entities import (BonoAplicable, DatosPrevisionales, DiaAsistencia, EstructuraSueldo,
                                  HechoAsistencia, PerfilPago)
from core.domain.montos import CERO, a_decimal
from core.use_cases.interfaces import (IFuenteAsistencia, IFuenteEstructuraSueldo, IFuenteFeriados,
                                       IFuenteGuardias, IFuentePerfilPago)
from infrastructure.database.db_manager import get_db_session
from infrastructure.database.models import AsistenciaMensual, Estructura, Feriado, Guardia


# ── Conversión ORM → entidades ────────────────────────────────────────────────

def estructura_a_entidad(fila: Estructura) -> EstructuraSueldo:
    bonos = []
    for be in fila.bonos:
        cat = be.catalogo
        if not be.activo or not cat.activo:
            continue
        bonos.append(BonoAplicable(
            codigo=cat.codigo,
            nombre=cat.nombre,
            tipo_bono=cat.tipo_bono,
            imponible=bool(cat.imponible),
            tributable=bool(cat.tributable),
            monto=a_decimal(be.monto_override if be.monto_override is not None else cat.monto_defecto),
            porcentaje=a_decimal(be.porcentaje_override if be.porcentaje_override is not None else cat.porcentaje_defecto),
            condicion_tipo=cat.condicion_tipo,
            condicion_valor=a_decimal(cat.condicion_valor),
        ))
    return EstructuraSueldo(
        id=fila.id,
        sueldo_base=a_decimal(fila.sueldo_base),
        colacion=a_decimal(fila.colacion),
        movilizacion=a_decimal(fila.movilizacion),
        tipo_gratificacion=fila.tipo_gratificacion,
        monto_gratificacion=a_decimal(fila.monto_gratificacion),
        activa=bool(fila.activa),
        vigente_desde=fila.vigente_desde,
        vigente_hasta=fila.vigente_hasta,
        bonos=bonos,
    )


def asistencia_a_entidad(fila: AsistenciaMensual, guardia: Guardia = None) -> HechoAsistencia:
    detalle = [
        DiaAsistencia(fecha=date.fromisoformat(d["fecha"]), codigo=d["codigo"])
        for d in json.loads(fila.detalle_json or "[]")
    ]
    return HechoAsistencia(
        guardia_id=fila.guardia_id,
        anio=fila.anio,
        mes=fila.mes,
        dias_mes=fila.dias_mes,
        dias_trabajados=fila.dias_trabajados or 0,
        dias_ausente=fila.dias_ausente or 0,
        dias_licencia_medica=fila.dias_licencia_medica or 0,
        dias_vacaciones=fila.dias_vacaciones or 0,
        dias_permiso_sin_goce=fila.dias_permiso_sin_goce or 0,
        dias_programados=fila.dias_programados or 0,
        domingos_trabajados=fila.domingos_trabajados or 0,
        domingos_programados=fila.domingos_programados or 0,
        horas_normales=a_decimal(fila.horas_normales),
        horas_extra_1=a_decimal(fila.horas_extra_1),
        horas_extra_2=a_decimal(fila.horas_extra_2),
        horas_atraso=a_decimal(fila.horas_atraso),
        horas_feriado=a_decimal(fila.horas_feriado),
        fecha_inicio_contrato=guardia.fecha_ingreso if guardia else None,
        fecha_fin_contrato=guardia.fecha_termino if guardia else None,
        detalle_diario=detalle,
        fuente=fila.fuente or "INTERNA",
    )


def _asignar_asistencia(fila: AsistenciaMensual, hecho: HechoAsistencia):
    fila.fuente = hecho.fuente
    fila.dias_mes = hecho.dias_mes
    fila.dias_trabajados = hecho.dias_trabajados
    fila.dias_ausente = hecho.dias_ausente
    fila.dias_licencia_medica = hecho.dias_licencia_medica
    fila.dias_vacaciones = hecho.dias_vacaciones
    fila.dias_permiso_sin_goce = hecho.dias_permiso_sin_goce
    fila.dias_programados = hecho.dias_programados
    fila.domingos_trabajados = hecho.domingos_trabajados
    fila.domingos_programados = hecho.domingos_programados
    fila.horas_normales = hecho.horas_normales
    fila.horas_extra_1 = hecho.horas_extra_1
    fila.horas_extra_2 = hecho.horas_extra_2
    fila.horas_atraso = hecho.horas_atraso
    fila.horas_feriado = hecho.horas_feriado
    fila.detalle_json = json.dumps([{"fecha": d.fecha.isoformat(), "codigo": d.codigo} for d in hecho.detalle_diario])


# ── Repositorio (sesión explícita) ────────────────────────────────────────────

class RepositorioGuardias:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, guardia_id: int):
        return self.db.get(Guardia, guardia_id)

    def listar_activos(self):
        return self.db.query(Guardia).filter(Guardia.estado == "ACTIVO").order_by(Guardia.id).all()

    def mapa_ruts(self) -> dict:
        """ {rut: guardia_id} de los guardias activos, para emparejar importaciones """
        return {g.rut: g.id for g in self.listar_activos()}

    def create(self, datos: dict) -> Guardia:
        nuevo = Guardia(**datos)
        self.db.add(nuevo)
        self.db.flush()
        return nuevo

    def asistencias_del_periodo(self, anio: int, mes: int) -> dict:
        filas = self.db.query(AsistenciaMensual).filter(AsistenciaMensual.anio == anio, AsistenciaMensual.mes == mes).all()
        return {(f.guardia_id, f.anio, f.mes): asistencia_a_entidad(f) for f in filas}

    def guardar_conciliacion(self, conciliacion) -> int:
        """Persiste las claves insertadas y reemplazadas de un ResultadoConciliacion."""
        cambios = 0
        for clave in conciliacion.insertados + conciliacion.reemplazados:
            hecho = conciliacion.registros[clave]
            fila = self.db.query(AsistenciaMensual).filter_by(
                guardia_id=hecho.guardia_id, anio=hecho.anio, mes=hecho.mes).first()
            if fila is None:
                fila = AsistenciaMensual(guardia_id=hecho.guardia_id, anio=hecho.anio, mes=hecho.mes)
                self.db.add(fila)
            _asignar_asistencia(fila, hecho)
            cambios += 1
        self.db.flush()
        return cambios


# ── Fuentes de lectura para el motor (una sesión corta por consulta) ──────────

class FuentesSQL(IFuenteAsistencia, IFuenteEstructuraSueldo, IFuentePerfilPago, IFuenteGuardias, IFuenteFeriados):
    """
    Implementa las interfaces de lectura del motor sobre la BD.
    Cada método abre su propia sesión: se usa desde los hilos del lote.
    """

    def __init__(self, fabrica_sesiones=None):
        self.fabrica = fabrica_sesiones

    def listar_guardias_elegibles(self, anio: int, mes: int):
        inicio = date(anio, mes, 1)
        fin = date(anio, mes, calendar.monthrange(anio, mes)[1])
        with get_db_session(self.fabrica) as db:
            filas = db.query(Guardia.id).filter(
                Guardia.estado == "ACTIVO",
                or_(Guardia.fecha_ingreso.is_(None), Guardia.fecha_ingreso <= fin),
                or_(Guardia.fecha_termino.is_(None), Guardia.fecha_termino >= inicio),
            ).order_by(Guardia.id).all()
            return [f.id for f in filas]

    def obtener_datos_previsionales(self, guardia_id: int):
        with get_db_session(self.fabrica) as db:
            g = db.get(Guardia, guardia_id)
            if g is None:
                return None
            return DatosPrevisionales(
                guardia_id=g.id,
                afp=g.afp,
                sistema_salud=g.sistema_salud or "FONASA",
                porcentaje_isapre=a_decimal(g.porcentaje_isapre),
                nombre_isapre=g.nombre_isapre,
                tipo_contrato=g.tipo_contrato or "INDEFINIDO",
                cargas_familiares=g.cargas_familiares or 0,
                asignacion_maternal=bool(g.asignacion_maternal),
                asignacion_invalidez=bool(g.asignacion_invalidez),
                renta_promedio_asignacion=(a_decimal(g.renta_promedio_asignacion)
                                           if g.renta_promedio_asignacion is not None else None),
                apv=a_decimal(g.apv_mensual),
                fecha_ingreso=g.fecha_ingreso,
                fecha_termino=g.fecha_termino,
            )

    def obtener_asistencia(self, guardia_id: int, anio: int, mes: int):
        with get_db_session(self.fabrica) as db:
            fila = db.query(AsistenciaMensual).filter_by(guardia_id=guardia_id, anio=anio, mes=mes).first()
            if fila is None:
                return None
            return asistencia_a_entidad(fila, db.get(Guardia, guardia_id))

    def obtener_estructura_guardia(self, guardia_id: int):
        with get_db_session(self.fabrica) as db:
            g = db.get(Guardia, guardia_id)
            if g is None or g.estructura is None:
                return None
            return estructura_a_entidad(g.estructura)

    def obtener_estructura_instalacion(self, guardia_id: int):
        with get_db_session(self.fabrica) as db:
            g = db.get(Guardia, guardia_id)
            if g is None or g.instalacion is None or g.instalacion.estructura is None:
                return None
            return estructura_a_entidad(g.instalacion.estructura)

    def obtener_perfil_pago(self, guardia_id: int):
        with get_db_session(self.fabrica) as db:
            g = db.get(Guardia, guardia_id)
            if g is None:
                return None
            return PerfilPago(
                guardia_id=g.id,
                rut=g.rut,
                nombre_completo=g.nombre_completo,
                banco=g.banco,
                tipo_cuenta=g.tipo_cuenta,
                numero_cuenta=g.numero_cuenta,
                email=g.email,
            )

    def obtener_config_anticipo(self, guardia_id: int):
        """ (recibe_anticipo, monto, tope) """
        with get_db_session(self.fabrica) as db:
            g = db.get(Guardia, guardia_id)
            if g is None:
                return False, CERO, CERO
            return bool(g.recibe_anticipo), a_decimal(g.monto_anticipo), a_decimal(g.tope_anticipo)

    def listar_feriados(self, anio: int, mes: int):
        inicio = date(anio, mes, 1)
        fin = date(anio, mes, calendar.monthrange(anio, mes)[1])
        with get_db_session(self.fabrica) as db:
            return [f.fecha for f in db.query(Feriado).filter(Feriado.fecha.between(inicio, fin)).all()]
