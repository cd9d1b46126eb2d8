"""
Importación de asistencia mensual desde el CSV "Asistencias mensuales CR".

Formato: separado por ';', once columnas de identificación, luego una columna
por día (encabezado DD-MM-YYYY) y después 18 columnas de resumen:

  turnosEnRol, turnosSinRol, asistidos, faltas, sinControlar, licencia,
  permisoSG, vacacion, faltasConsecutivas, domingosPlani, domingosTrab,
  horasNormales, horasColacion, horasExtPact, horasExtReemplazo,
  horasAtrasos, horasRecargoLegal, horasTVF

La conciliación con lo ya registrado es una función pura: empareja por
(guardia, año, mes) e inserta o reemplaza, sin tocar la base de datos.
"""
import calendar
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation

import pandas as pd

from core.domain.entities import DiaAsistencia, HechoAsistencia
from core.domain.exceptions import ArchivoAsistenciaInvalidoError
from core.domain.montos import CERO
from core.use_cases.proporcionalidad_asistencia import resumir_detalle_diario

logger = logging.getLogger(__name__)

_PATRON_DIA = re.compile(r"^(\d{2})-(\d{2})-(\d{4})$")

COLUMNAS_IDENTIFICACION = [
    "rut", "rut_dv", "nombre", "fecha_ingreso", "fecha_ult_dia", "fecha_finiquito",
    "tipo_empleado", "cc_actual", "cliente_actual", "sector_actual", "instalacion_actual",
]

COLUMNAS_RESUMEN = [
    "turnos_en_rol", "turnos_sin_rol", "asistidos", "faltas", "sin_controlar", "licencia",
    "permiso_sg", "vacacion", "faltas_consecutivas", "domingos_plani", "domingos_trab",
    "horas_normales", "horas_colacion", "horas_ext_pact", "horas_ext_reemplazo",
    "horas_atrasos", "horas_recargo_legal", "horas_tvf",
]
_COLUMNAS_HORAS = {c for c in COLUMNAS_RESUMEN if c.startswith("horas_")}


@dataclass
class ArchivoAsistenciaCR:
    anio: int
    mes: int
    dias: list
    filas: list


@dataclass
class ResultadoConciliacion:
    registros: dict
    insertados: list = field(default_factory=list)
    reemplazados: list = field(default_factory=list)
    sin_cambios: list = field(default_factory=list)


def normalizar_rut(rut: str) -> str:
    """'17.385.726-8' -> '17385726' (sin puntos, sin DV, sin ceros a la izquierda)."""
    limpio = str(rut or "").replace(".", "").replace(" ", "").strip()
    base = limpio.split("-")[0] if "-" in limpio else limpio
    return base.lstrip("0")


def _entero(valor: str) -> int:
    valor = (valor or "").strip()
    if not valor:
        return 0
    try:
        return int(valor)
    except ValueError:
        return 0


def _decimal(valor: str) -> Decimal:
    valor = (valor or "").strip().replace(",", ".")
    if not valor:
        return CERO
    try:
        return Decimal(valor)
    except InvalidOperation:
        return CERO


def parsear_csv_asistencia(contenido) -> ArchivoAsistenciaCR:
    """
    Args:
        contenido: str o bytes del CSV (bytes se decodifican como utf-8-sig).

    Returns:
        ArchivoAsistenciaCR con una fila (dict) por guardia.
    """
    if isinstance(contenido, bytes):
        contenido = contenido.decode("utf-8-sig")
    try:
        df = pd.read_csv(io.StringIO(contenido), sep=";", dtype=str, keep_default_na=False, header=0)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        raise ArchivoAsistenciaInvalidoError(f"CSV de asistencia ilegible: {e}") from e
    if df.empty:
        raise ArchivoAsistenciaInvalidoError("CSV vacío o sin datos")

    indices_dia = []
    dias = []
    for i, nombre in enumerate(df.columns):
        m = _PATRON_DIA.match(str(nombre).strip())
        if m:
            dd, mm, yyyy = m.groups()
            indices_dia.append(i)
            dias.append(date(int(yyyy), int(mm), int(dd)))
    if not dias:
        raise ArchivoAsistenciaInvalidoError("No se encontraron columnas de días en el CSV")

    anio, mes = dias[0].year, dias[0].month
    inicio_resumen = indices_dia[-1] + 1

    filas = []
    for _, row in df.iterrows():
        valores = [str(v) for v in row.tolist()]
        if not valores[0].strip():
            continue
        fila = {c: (valores[i].strip() if i < len(valores) else "") for i, c in enumerate(COLUMNAS_IDENTIFICACION)}
        fila["codigos"] = {
            dia: valores[idx].strip()
            for dia, idx in zip(dias, indices_dia)
            if idx < len(valores) and valores[idx].strip()
        }
        for j, columna in enumerate(COLUMNAS_RESUMEN):
            idx = inicio_resumen + j
            crudo = valores[idx] if idx < len(valores) else ""
            fila[columna] = _decimal(crudo) if columna in _COLUMNAS_HORAS else _entero(crudo)
        filas.append(fila)

    logger.info(f"CSV de asistencia {mes:02d}-{anio}: {len(filas)} filas, {len(dias)} días.")
    return ArchivoAsistenciaCR(anio=anio, mes=mes, dias=dias, filas=filas)


def emparejar_por_rut(filas: list, guardias_por_rut: dict) -> tuple:
    """
    Args:
        guardias_por_rut: {rut (cualquier formato): guardia_id}

    Returns:
        (emparejados: list[(fila, guardia_id)], sin_match: list[fila])
    """
    indice = {normalizar_rut(rut): gid for rut, gid in guardias_por_rut.items()}
    emparejados, sin_match = [], []
    for fila in filas:
        gid = indice.get(normalizar_rut(fila["rut"]))
        if gid is None:
            sin_match.append(fila)
        else:
            emparejados.append((fila, gid))
    return emparejados, sin_match


def fila_a_hecho(fila: dict, guardia_id: int, archivo: ArchivoAsistenciaCR) -> HechoAsistencia:
    detalle = [DiaAsistencia(fecha=d, codigo=fila["codigos"].get(d, "-")) for d in archivo.dias]
    return HechoAsistencia(
        guardia_id=guardia_id,
        anio=archivo.anio,
        mes=archivo.mes,
        dias_mes=calendar.monthrange(archivo.anio, archivo.mes)[1],
        dias_trabajados=fila["asistidos"],
        dias_ausente=fila["faltas"],
        dias_licencia_medica=fila["licencia"],
        dias_vacaciones=fila["vacacion"],
        dias_permiso_sin_goce=fila["permiso_sg"],
        dias_programados=fila["turnos_en_rol"],
        domingos_trabajados=fila["domingos_trab"],
        domingos_programados=fila["domingos_plani"],
        horas_normales=fila["horas_normales"],
        horas_extra_1=fila["horas_ext_pact"],
        horas_extra_2=fila["horas_ext_reemplazo"],
        horas_atraso=fila["horas_atrasos"],
        detalle_diario=detalle,
        fuente="IMPORTADA",
    )


_RESUMEN_VS_DETALLE = {
    "dias_trabajados": "trabajados",
    "dias_ausente": "ausentes",
    "dias_licencia_medica": "licencia",
    "dias_vacaciones": "vacaciones",
    "dias_permiso_sin_goce": "permisos",
}


def diferencias_con_detalle(hecho: HechoAsistencia) -> dict:
    """
    Contrasta las columnas de resumen con los códigos día a día.

    Returns:
        {campo: (valor_resumen, conteo_detalle)} solo para los que no cuadran.
    """
    if not hecho.detalle_diario:
        return {}
    conteo = resumir_detalle_diario(hecho.detalle_diario)
    return {
        campo: (getattr(hecho, campo), conteo[clave])
        for campo, clave in _RESUMEN_VS_DETALLE.items()
        if getattr(hecho, campo) != conteo[clave]
    }


def conciliar_asistencias(existentes: dict, entrantes: list) -> ResultadoConciliacion:
    """
    Mezcla pura por clave natural (guardia_id, anio, mes).

    Args:
        existentes: {(guardia_id, anio, mes): HechoAsistencia}
        entrantes: list[HechoAsistencia]

    Returns:
        ResultadoConciliacion con el nuevo mapa y las claves insertadas,
        reemplazadas o sin cambios. `existentes` no se modifica.
    """
    resultado = ResultadoConciliacion(registros=dict(existentes))
    for hecho in entrantes:
        clave = (hecho.guardia_id, hecho.anio, hecho.mes)
        actual = resultado.registros.get(clave)
        if actual is None:
            resultado.insertados.append(clave)
        elif actual == hecho:
            resultado.sin_cambios.append(clave)
            continue
        else:
            resultado.reemplazados.append(clave)
        resultado.registros[clave] = hecho
    return resultado
