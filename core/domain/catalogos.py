"""
Catálogos de códigos para las interfaces Previred y banco.

Los bancos se pueden sobrescribir con un Excel en la raíz del proyecto:
  - codigos_bancos.xlsx  (columnas: nombre, codigo)

Si el archivo no existe se usa la tabla base con los bancos más frecuentes.
"""
import logging
import unicodedata
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)

# Directorio raíz del proyecto (2 niveles arriba de core/domain/)
_BASE_DIR = Path(__file__).resolve().parent.parent.parent


def normalizar_clave(texto: str) -> str:
    """'Banco de Chile / Edwards' -> 'BANCO DE CHILE / EDWARDS' sin tildes."""
    texto = unicodedata.normalize("NFD", str(texto or ""))
    texto = "".join(c for c in texto if unicodedata.category(c) != "Mn")
    return " ".join(texto.upper().split())


def _leer_excel(filename: str):
    path = _BASE_DIR / filename
    if not path.exists():
        return None
    try:
        return pd.read_excel(path, dtype=str)
    except (OSError, ValueError) as e:
        logger.warning(f"No se pudo leer {filename}, se usa catálogo base: {e}")
        return None


def _cargar_bancos() -> dict:
    df = _leer_excel("codigos_bancos.xlsx")
    if df is not None and not df.empty:
        result = {}
        for _, row in df.iterrows():
            nombre = normalizar_clave(row.get("nombre", ""))
            codigo = str(row.get("codigo", "")).strip().zfill(3)
            if nombre and codigo != "000":
                result[nombre] = codigo
        if result:
            return result

    # ── Tabla base (códigos CMF) ──────────────────────────────────────────────
    return {
        "BANCO DE CHILE": "001",
        "BANCO INTERNACIONAL": "009",
        "BANCOESTADO": "012",
        "BANCO ESTADO": "012",
        "SCOTIABANK": "014",
        "BCI": "016",
        "BANCO BICE": "028",
        "HSBC": "031",
        "SANTANDER": "037",
        "BANCO SANTANDER": "037",
        "ITAU": "039",
        "BANCO SECURITY": "049",
        "BANCO FALABELLA": "051",
        "BANCO RIPLEY": "053",
        "BANCO CONSORCIO": "055",
        "COOPEUCH": "672",
        "TENPO": "730",
        "MERCADO PAGO": "875",
    }


CATALOGO_BANCOS = _cargar_bancos()

# Códigos de AFP en Previred
CODIGOS_AFP = {
    "cuprum": "03",
    "habitat": "05",
    "provida": "08",
    "planvital": "29",
    "capital": "33",
    "modelo": "34",
    "uno": "35",
}

CODIGO_FONASA = "07"

CODIGOS_ISAPRE = {
    "BANMEDICA": "01",
    "CONSALUD": "02",
    "VIDA TRES": "03",
    "COLMENA": "04",
    "CRUZ BLANCA": "05",
    "NUEVA MASVIDA": "10",
    "ESENCIAL": "28",
}

# Tipos de cuenta del archivo de transferencias
TIPOS_CUENTA = {
    "CORRIENTE": "CC",
    "CUENTA CORRIENTE": "CC",
    "VISTA": "CV",
    "CUENTA VISTA": "CV",
    "CUENTA RUT": "CV",
    "RUT": "CV",
    "AHORRO": "AH",
    "CUENTA DE AHORRO": "AH",
}


def codigo_banco(nombre: str):
    return CATALOGO_BANCOS.get(normalizar_clave(nombre))


def codigo_tipo_cuenta(tipo: str):
    return TIPOS_CUENTA.get(normalizar_clave(tipo))


def codigo_afp(afp: str):
    return CODIGOS_AFP.get((afp or "").strip().lower())


def codigo_salud(sistema_salud: str, nombre_isapre: str = None):
    if (sistema_salud or "").upper() == "FONASA":
        return CODIGO_FONASA
    return CODIGOS_ISAPRE.get(normalizar_clave(nombre_isapre))
