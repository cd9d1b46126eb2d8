"""
Proporcionalidad del sueldo por asistencia.

La fracción trabajada prorratea el sueldo base y las asignaciones fijas
(colación y movilización). Las horas extra y las horas en feriado se suman
aparte y no se prorratean.

Reglas de borde:
  - Días fuera del contrato (ingreso o término a mitad de mes) no se pagan.
  - Días no programados dentro del contrato son descanso pagado.
  - Vacaciones y licencia médica (si la política la remunera) cuentan como pagados.
  - Faltas y permisos sin goce nunca cuentan.
  - Las horas de atraso descuentan días acreditados, con piso en cero.
"""
import calendar
from collections import Counter
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from core.domain.entities import CODIGOS_ASISTENCIA, HechoAsistencia
from core.domain.montos import CERO, a_decimal, acotar


@dataclass
class ResultadoProporcionalidad:
    dias_mes: int
    dias_contrato: int
    dias_descanso: int
    dias_acreditados: Decimal
    descuento_atraso_dias: Decimal
    fraccion: Decimal


def dias_en_contrato(anio: int, mes: int, inicio=None, fin=None) -> int:
    """Días del mes calendario que caen dentro de [inicio, fin]."""
    ultimo = calendar.monthrange(anio, mes)[1]
    desde = date(anio, mes, 1)
    hasta = date(anio, mes, ultimo)
    if inicio and inicio > desde:
        desde = inicio
    if fin and fin < hasta:
        hasta = fin
    if hasta < desde:
        return 0
    return (hasta - desde).days + 1


def calcular_fraccion_trabajada(
    asistencia: HechoAsistencia,
    horas_jornada_diaria: Decimal = Decimal("8"),
    licencia_remunerada: bool = True,
) -> ResultadoProporcionalidad:
    dias_mes = asistencia.dias_mes or calendar.monthrange(asistencia.anio, asistencia.mes)[1]
    dias_contrato = dias_mes
    if asistencia.fecha_inicio_contrato or asistencia.fecha_fin_contrato:
        fuera = calendar.monthrange(asistencia.anio, asistencia.mes)[1] - dias_en_contrato(
            asistencia.anio, asistencia.mes, asistencia.fecha_inicio_contrato, asistencia.fecha_fin_contrato)
        dias_contrato = max(0, dias_mes - fuera)

    programados = asistencia.dias_programados if asistencia.dias_programados > 0 else dias_contrato
    programados = min(programados, dias_contrato)
    dias_descanso = dias_contrato - programados

    licencia = asistencia.dias_licencia_medica if licencia_remunerada else 0
    pagados = asistencia.dias_trabajados + asistencia.dias_vacaciones + licencia + dias_descanso
    acreditados = Decimal(min(pagados, dias_contrato))

    descuento_atraso = CERO
    if horas_jornada_diaria > 0:
        descuento_atraso = a_decimal(asistencia.horas_atraso) / a_decimal(horas_jornada_diaria)
    acreditados = max(CERO, acreditados - descuento_atraso)

    fraccion = CERO
    if dias_mes > 0:
        fraccion = acotar(acreditados / Decimal(dias_mes), CERO, Decimal("1"))

    return ResultadoProporcionalidad(
        dias_mes=dias_mes,
        dias_contrato=dias_contrato,
        dias_descanso=dias_descanso,
        dias_acreditados=acreditados,
        descuento_atraso_dias=descuento_atraso,
        fraccion=fraccion,
    )


def resumir_detalle_diario(detalle: list) -> dict:
    """
    Cuenta los códigos del detalle día a día.

    Returns:
        dict con trabajados, ausentes, licencia, vacaciones, permisos,
        descansos, no_aplica, sin_controlar y desconocidos.
    """
    conteo = Counter(CODIGOS_ASISTENCIA.get(d.codigo.strip().upper(), "DESCONOCIDO") for d in detalle)
    return {
        # CA es cambio controlado: no es falta
        "trabajados": conteo["ASISTIO"] + conteo["CAMBIO"],
        "ausentes": conteo["FALTA"] + conteo["SIN_ASISTENCIA"],
        "licencia": conteo["LICENCIA_MEDICA"],
        "vacaciones": conteo["VACACION"],
        "permisos": conteo["PERMISO_SIN_GOCE"],
        "descansos": conteo["DESCANSO"],
        "no_aplica": conteo["NO_APLICA"],
        "sin_controlar": conteo["SIN_CONTROLAR"],
        "desconocidos": conteo["DESCONOCIDO"],
    }
