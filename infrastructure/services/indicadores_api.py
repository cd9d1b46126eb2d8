# infrastructure/services/indicadores_api.py
import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal

import requests

from core.domain.exceptions import IndicadoresNoDisponiblesError
from core.domain.parametros import SnapshotParametrosLegales
from infrastructure.config import TIMEOUT_INDICADORES, URL_INDICADORES, URL_INDICADORES_RESPALDO

logger = logging.getLogger(__name__)


def _consultar_mindicador(url_base: str, indicador: str, fecha: date) -> Decimal:
    """GET {url}/{indicador}/{dd-mm-yyyy} → {"serie": [{"fecha": ..., "valor": ...}]}"""
    url = f"{url_base.rstrip('/')}/{indicador}/{fecha.strftime('%d-%m-%Y')}"
    response = requests.get(url, headers={"Accept": "application/json"}, timeout=TIMEOUT_INDICADORES)
    response.raise_for_status()
    serie = response.json().get("serie") or []
    if not serie:
        raise ValueError(f"Sin valor de {indicador} para {fecha}")
    return Decimal(str(serie[0]["valor"]))


def _consultar_respaldo(url: str) -> dict:
    """Respaldo: {"data": {"uf": {"value": ...}, "utm": {"value": ...}}} con los valores del día."""
    response = requests.get(url, headers={"Accept": "application/json"}, timeout=TIMEOUT_INDICADORES)
    response.raise_for_status()
    datos = response.json().get("data") or {}
    return {
        "uf": Decimal(str(datos["uf"]["value"])),
        "utm": Decimal(str(datos["utm"]["value"])),
    }


def consultar_uf_utm(fecha: date) -> dict:
    """
    Obtiene UF y UTM para una fecha.
    Intenta primero con mindicador.cl; si falla usa la API de respaldo.
    Retorna {"uf": Decimal, "utm": Decimal, "fuente": str}.

    Raises:
        IndicadoresNoDisponiblesError: si ambas fuentes fallan.
    """
    # --- INTENTO 1: API PRINCIPAL ---
    try:
        return {
            "uf": _consultar_mindicador(URL_INDICADORES, "uf", fecha),
            "utm": _consultar_mindicador(URL_INDICADORES, "utm", fecha),
            "fuente": "principal",
        }
    except (requests.RequestException, ValueError, KeyError) as e:
        logger.warning(f"API principal de indicadores falló ({e}); se intenta el respaldo.")

    # --- INTENTO 2: API DE RESPALDO ---
    try:
        valores = _consultar_respaldo(URL_INDICADORES_RESPALDO)
    except (requests.RequestException, ValueError, KeyError, TypeError) as e:
        raise IndicadoresNoDisponiblesError(f"Fallo de conexión en ambas APIs de indicadores: {e}") from e
    valores["fuente"] = "respaldo"
    return valores


def crear_snapshot_desde_indicadores(base: SnapshotParametrosLegales, anio: int, mes: int) -> SnapshotParametrosLegales:
    """
    Borrador de una nueva versión mensual: copia la versión base y actualiza
    UF y UTM con los indicadores del primer día del mes. Debe revisarse y
    registrarse explícitamente (las versiones no se editan).
    """
    inicio = date(anio, mes, 1)
    valores = consultar_uf_utm(inicio)
    logger.info(f"Indicadores {mes:02d}-{anio} ({valores['fuente']}): UF {valores['uf']}, UTM {valores['utm']}.")
    return replace(
        base,
        version_id=f"CL-{anio}-{mes:02d}",
        nombre=f"Parámetros Legales Chile - {mes:02d}/{anio}",
        vigente_desde=inicio,
        vigente_hasta=None,
        valor_uf=valores["uf"],
        valor_utm=valores["utm"],
    )
