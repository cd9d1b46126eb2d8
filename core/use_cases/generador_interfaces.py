"""
Generador de archivos de salida del periodo.

  generar_archivo_previred()     → TXT de cotizaciones (latin-1)
  generar_libro_remuneraciones() → CSV del libro de remuneraciones (utf-8)
  generar_archivo_banco()        → TXT de nómina de pago masivo (latin-1, sin tildes)
  generar_excel_libro()          → XLSX del libro para revisión

Todos leen las liquidaciones ya guardadas (su desglose) y nunca recalculan.
Un guardia sin un dato obligatorio no aborta el archivo: su fila se omite y
queda informada en `ArchivoExportado.omisiones`.
"""
import io
import logging
import unicodedata
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

import pandas as pd
from openpyxl.styles import Font, PatternFill

from core.domain.catalogos import codigo_afp, codigo_banco, codigo_salud, codigo_tipo_cuenta
from core.domain.exceptions import CampoExportacionFaltanteError
from core.domain.montos import CERO, a_decimal

logger = logging.getLogger(__name__)

SEPARADOR = ";"
FIN_LINEA = "\r\n"

COLUMNAS_PREVIRED = [
    "RUT", "NOMBRE", "RENTA_IMPONIBLE", "COTIZACION_AFP", "COTIZACION_SALUD",
    "SEGURO_CESANTIA", "CODIGO_AFP", "CODIGO_SALUD",
]

COLUMNAS_LIBRO = [
    "RUT", "NOMBRE", "PERIODO", "DIAS_TRABAJADOS", "SUELDO_BASE", "GRATIFICACION",
    "HORAS_EXTRA_1", "HORAS_EXTRA_2", "RECARGO_FERIADO", "COMISIONES", "BONOS_IMPONIBLES",
    "OTROS_IMPONIBLES", "TOTAL_IMPONIBLE", "COLACION", "MOVILIZACION", "ASIGNACION_FAMILIAR",
    "BONOS_NO_IMPONIBLES", "OTROS_NO_IMPONIBLES", "TOTAL_NO_IMPONIBLE", "AFP", "SALUD",
    "SEGURO_CESANTIA", "IMPUESTO_UNICO", "APV", "ANTICIPO", "OTROS_DESCUENTOS",
    "TOTAL_DESCUENTOS", "LIQUIDO", "COSTO_EMPLEADOR",
]

COLUMNAS_BANCO = [
    "RUT", "NOMBRE", "CODIGO_BANCO", "TIPO_CUENTA", "NUMERO_CUENTA", "MONTO", "EMAIL", "GLOSA",
]


@dataclass
class OmisionExportacion:
    guardia_id: int
    campo: str
    mensaje: str


@dataclass
class ArchivoExportado:
    nombre_archivo: str
    contenido: bytes
    filas: int
    omisiones: list = field(default_factory=list)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _limpiar_texto(texto: str) -> str:
    """Quita tildes y eñes para los formatos bancarios."""
    if not texto:
        return ""
    s = str(texto).upper()
    s = "".join(c for c in unicodedata.normalize("NFD", s) if unicodedata.category(c) != "Mn")
    return s.replace("Ñ", "N").strip()


def _entero(valor) -> str:
    """Monto en pesos sin decimales."""
    return str(int(a_decimal(valor)))


def _dias(valor) -> str:
    """Días con hasta dos decimales: los atrasos descuentan fracciones de día."""
    dias = a_decimal(valor).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    if dias == dias.to_integral_value():
        return str(int(dias))
    return str(dias.normalize())


def _suma(valores: dict):
    return sum((a_decimal(v) for v in (valores or {}).values()), CERO)


def _requerir(valor, guardia_id, campo: str, archivo: str):
    if valor is None or str(valor).strip() == "":
        raise CampoExportacionFaltanteError(guardia_id, campo, archivo)
    return valor


def _omitir(omisiones: list, error: CampoExportacionFaltanteError):
    logger.warning(str(error))
    omisiones.append(OmisionExportacion(error.guardia_id, error.campo, str(error)))


def _csv(filas: list, columnas: list, encoding: str) -> bytes:
    df = pd.DataFrame(filas, columns=columnas)
    texto = df.to_csv(sep=SEPARADOR, index=False, lineterminator=FIN_LINEA)
    return texto.encode(encoding, errors="replace")


# ── Previred ─────────────────────────────────────────────────────────────────

def generar_archivo_previred(anio: int, mes: int, liquidaciones: list, perfiles: dict) -> ArchivoExportado:
    """Los códigos de AFP y salud salen de la afiliación guardada en cada liquidación."""
    filas, omisiones = [], []
    for liq in liquidaciones:
        gid = liq["guardia_id"]
        d = liq["desglose"]
        perfil = perfiles.get(gid)
        afiliacion = d.get("afiliacion") or {}
        try:
            rut = _requerir(perfil.rut if perfil else None, gid, "rut", "previred")
            nombre = _requerir(perfil.nombre_completo if perfil else None, gid, "nombre", "previred")
            cod_afp = _requerir(codigo_afp(afiliacion.get("afp")), gid, "codigo_afp", "previred")
        except CampoExportacionFaltanteError as e:
            _omitir(omisiones, e)
            continue
        filas.append([
            rut, nombre, _entero(d["total_imponible"]), _entero(d["afp"]), _entero(d["salud"]),
            _entero(d["seguro_cesantia"]), cod_afp,
            codigo_salud(afiliacion.get("sistema_salud"), afiliacion.get("nombre_isapre")) or "",
        ])
    return ArchivoExportado(
        nombre_archivo=f"previred_{anio}{mes:02d}.txt",
        contenido=_csv(filas, COLUMNAS_PREVIRED, "latin-1"),
        filas=len(filas),
        omisiones=omisiones,
    )


# ── Libro de remuneraciones ──────────────────────────────────────────────────

def _fila_libro(rut, nombre, periodo: str, d: dict) -> list:
    return [
        rut, nombre, periodo, _dias(d["dias_acreditados"]),
        _entero(d["sueldo_base"]), _entero(d["gratificacion"]),
        _entero(d["horas_extra_1"]), _entero(d["horas_extra_2"]), _entero(d["recargo_feriado"]),
        _entero(d["comisiones"]), _entero(_suma(d["bonos_imponibles"])), _entero(d["otros_imponibles"]),
        _entero(d["total_imponible"]),
        _entero(d["colacion"]), _entero(d["movilizacion"]), _entero(d["asignacion_familiar"]),
        _entero(_suma(d["bonos_no_imponibles"])), _entero(d["otros_no_imponibles"]),
        _entero(d["total_no_imponible"]),
        _entero(d["afp"]), _entero(d["salud"]), _entero(d["seguro_cesantia"]), _entero(d["impuesto_unico"]),
        _entero(d["apv"]), _entero(d["anticipo"]), _entero(_suma(d["otros_descuentos"])),
        _entero(d["total_descuentos"]), _entero(d["liquido"]), _entero(d["costo_empleador"]),
    ]


def _filas_libro(anio: int, mes: int, liquidaciones: list, perfiles: dict):
    filas, omisiones = [], []
    periodo = f"{anio}{mes:02d}"
    for liq in liquidaciones:
        gid = liq["guardia_id"]
        perfil = perfiles.get(gid)
        try:
            rut = _requerir(perfil.rut if perfil else None, gid, "rut", "libro")
            nombre = _requerir(perfil.nombre_completo if perfil else None, gid, "nombre", "libro")
        except CampoExportacionFaltanteError as e:
            _omitir(omisiones, e)
            continue
        filas.append(_fila_libro(rut, nombre, periodo, liq["desglose"]))
    return filas, omisiones


def generar_libro_remuneraciones(anio: int, mes: int, liquidaciones: list, perfiles: dict) -> ArchivoExportado:
    filas, omisiones = _filas_libro(anio, mes, liquidaciones, perfiles)
    return ArchivoExportado(
        nombre_archivo=f"libro_remuneraciones_{anio}{mes:02d}.csv",
        contenido=_csv(filas, COLUMNAS_LIBRO, "utf-8"),
        filas=len(filas),
        omisiones=omisiones,
    )


def generar_excel_libro(anio: int, mes: int, liquidaciones: list, perfiles: dict) -> ArchivoExportado:
    filas, omisiones = _filas_libro(anio, mes, liquidaciones, perfiles)
    df = pd.DataFrame(filas, columns=COLUMNAS_LIBRO)
    df["DIAS_TRABAJADOS"] = df["DIAS_TRABAJADOS"].astype(float)
    for col in COLUMNAS_LIBRO[4:]:
        df[col] = df[col].astype(int)

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="Libro")
        ws = writer.sheets["Libro"]
        for celda in ws[1]:
            celda.font = Font(bold=True, color="FFFFFF")
            celda.fill = PatternFill("solid", fgColor="1A365D")
        ws.freeze_panes = "C2"
        for col in ws.columns:
            max_len = max((len(str(c.value or "")) for c in col), default=10)
            ws.column_dimensions[col[0].column_letter].width = min(max_len + 2, 30)
    return ArchivoExportado(
        nombre_archivo=f"libro_remuneraciones_{anio}{mes:02d}.xlsx",
        contenido=buffer.getvalue(),
        filas=len(filas),
        omisiones=omisiones,
    )


# ── Nómina bancaria ──────────────────────────────────────────────────────────

def generar_archivo_banco(anio: int, mes: int, liquidaciones: list, perfiles: dict, glosa: str = "REMUNERACION") -> ArchivoExportado:
    """Una fila por guardia con líquido positivo y datos bancarios completos."""
    filas, omisiones = [], []
    glosa_linea = _limpiar_texto(f"{glosa} {mes:02d}-{anio}")
    for liq in liquidaciones:
        gid = liq["guardia_id"]
        perfil = perfiles.get(gid)
        liquido = a_decimal(liq["desglose"]["liquido"])
        try:
            rut = _requerir(perfil.rut if perfil else None, gid, "rut", "banco")
            nombre = _requerir(perfil.nombre_completo if perfil else None, gid, "nombre", "banco")
            cod_banco = _requerir(codigo_banco(perfil.banco), gid, "codigo_banco", "banco")
            tipo = _requerir(codigo_tipo_cuenta(perfil.tipo_cuenta), gid, "tipo_cuenta", "banco")
            cuenta = _requerir(perfil.numero_cuenta, gid, "numero_cuenta", "banco")
            if liquido <= CERO:
                raise CampoExportacionFaltanteError(gid, "liquido", "banco")
        except CampoExportacionFaltanteError as e:
            _omitir(omisiones, e)
            continue
        filas.append([
            rut, _limpiar_texto(nombre), cod_banco, tipo,
            str(cuenta).replace("-", "").strip(), _entero(liquido),
            (perfil.email or "").strip(), glosa_linea,
        ])
    return ArchivoExportado(
        nombre_archivo=f"nomina_banco_{anio}{mes:02d}.txt",
        contenido=_csv(filas, COLUMNAS_BANCO, "latin-1"),
        filas=len(filas),
        omisiones=omisiones,
    )


# ── Despacho ─────────────────────────────────────────────────────────────────

TIPOS_EXPORTACION = ("previred", "libro", "libro_excel", "banco")


def exportar_periodo(tipo: str, anio: int, mes: int, liquidaciones: list, perfiles: dict,
                     glosa: str = "REMUNERACION") -> ArchivoExportado:
    if tipo == "previred":
        archivo = generar_archivo_previred(anio, mes, liquidaciones, perfiles)
    elif tipo == "libro":
        archivo = generar_libro_remuneraciones(anio, mes, liquidaciones, perfiles)
    elif tipo == "libro_excel":
        archivo = generar_excel_libro(anio, mes, liquidaciones, perfiles)
    elif tipo == "banco":
        archivo = generar_archivo_banco(anio, mes, liquidaciones, perfiles, glosa)
    else:
        raise ValueError(f"Tipo de exportación desconocido: {tipo}. Opciones: {', '.join(TIPOS_EXPORTACION)}")
    logger.info(f"{archivo.nombre_archivo}: {archivo.filas} filas, {len(archivo.omisiones)} omitidas.")
    return archivo


# ── Resumen para la vista del periodo ────────────────────────────────────────

def resumen_periodo(liquidaciones: list, perfiles: dict) -> pd.DataFrame:
    filas = []
    for liq in liquidaciones:
        d = liq["desglose"]
        perfil = perfiles.get(liq["guardia_id"])
        filas.append({
            "RUT": perfil.rut if perfil else "",
            "Guardia": perfil.nombre_completo if perfil else f"#{liq['guardia_id']}",
            "Versión": liq["version"],
            "Estado": liq["estado"],
            "Total Imponible": int(a_decimal(d["total_imponible"])),
            "Total No Imponible": int(a_decimal(d["total_no_imponible"])),
            "Total Descuentos": int(a_decimal(d["total_descuentos"])),
            "Líquido": int(a_decimal(d["liquido"])),
            "Costo Empleador": int(a_decimal(d["costo_empleador"])),
            "Alertas": ", ".join(liq.get("alertas", [])),
        })
    columnas = ["RUT", "Guardia", "Versión", "Estado", "Total Imponible", "Total No Imponible",
                "Total Descuentos", "Líquido", "Costo Empleador", "Alertas"]
    return pd.DataFrame(filas, columns=columnas)
