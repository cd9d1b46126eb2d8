"""
Resolución del sueldo efectivo de un guardia y evaluación de bonos.

Orden: estructura propia del guardia (RUT) si está activa y vigente, luego la
del puesto/instalación (PUESTO). Sin ninguna, el guardia queda fuera de la
ejecución con SinEstructuraSueldoError.
"""
import logging
from datetime import date
from decimal import Decimal

from core.domain.entities import TIPOS_BONO, BonoEvaluado, SueldoEfectivo
from core.domain.exceptions import SinEstructuraSueldoError
from core.domain.montos import CERO, a_decimal
from core.use_cases.interfaces import IFuenteEstructuraSueldo

logger = logging.getLogger(__name__)


class ResolvedorSueldo:
    def __init__(self, fuente: IFuenteEstructuraSueldo):
        self.fuente = fuente

    def resolver_sueldo_efectivo(self, guardia_id: int, inicio_periodo: date) -> SueldoEfectivo:
        propia = self.fuente.obtener_estructura_guardia(guardia_id)
        if propia is not None and propia.vigente_en(inicio_periodo):
            return SueldoEfectivo(estructura=propia, bonos=list(propia.bonos), fuente="RUT")
        if propia is not None:
            logger.info(f"Estructura propia del guardia {guardia_id} inactiva o vencida; se usa la del puesto.")

        puesto = self.fuente.obtener_estructura_instalacion(guardia_id)
        if puesto is not None and puesto.vigente_en(inicio_periodo):
            return SueldoEfectivo(estructura=puesto, bonos=list(puesto.bonos), fuente="PUESTO")

        raise SinEstructuraSueldoError(guardia_id)


def _condicion_cumplida(bono, asistencia) -> bool:
    if asistencia is None:
        return False
    valor = a_decimal(bono.condicion_valor)
    tipo = (bono.condicion_tipo or "").upper()
    if tipo == "DIAS_TRABAJADOS_MIN":
        return Decimal(asistencia.dias_trabajados) >= valor
    if tipo == "SIN_AUSENCIAS":
        return asistencia.dias_ausente + asistencia.dias_permiso_sin_goce == 0
    if tipo == "DOMINGOS_TRABAJADOS_MIN":
        return Decimal(asistencia.domingos_trabajados) >= valor
    if tipo == "SIN_ATRASOS":
        return a_decimal(asistencia.horas_atraso) == CERO
    logger.warning(f"Condición de bono desconocida '{bono.condicion_tipo}' en {bono.codigo}; no se paga.")
    return False


def evaluar_bonos(bonos: list, sueldo_base: Decimal, asistencia=None) -> list:
    """
    Evalúa cada bono contra su definición de catálogo.

    Args:
        bonos: lista de BonoAplicable (con overrides ya aplicados).
        sueldo_base: sueldo base nominal, base de los bonos porcentuales.
        asistencia: HechoAsistencia del periodo, para los condicionales.

    Returns:
        list[BonoEvaluado] (montos sin redondear).
    """
    evaluados = []
    for bono in bonos:
        tipo = (bono.tipo_bono or "").upper()
        if tipo not in TIPOS_BONO:
            raise ValueError(f"Tipo de bono desconocido: {bono.tipo_bono}")
        cumplido = True
        if tipo == "FIJO":
            monto = a_decimal(bono.monto)
        elif tipo == "PORCENTUAL":
            monto = a_decimal(sueldo_base) * a_decimal(bono.porcentaje) / Decimal("100")
        else:
            cumplido = _condicion_cumplida(bono, asistencia)
            monto = a_decimal(bono.monto) if cumplido else CERO

        evaluados.append(BonoEvaluado(
            codigo=bono.codigo,
            nombre=bono.nombre,
            monto=monto,
            imponible=bono.imponible,
            tributable=bono.tributable,
            cumplido=cumplido,
        ))
    return evaluados
