import logging
from datetime import datetime

from core.domain.exceptions import AnticipoExcedeTopeError, TransicionInvalidaError
from core.domain.montos import CERO, a_decimal, redondear

logger = logging.getLogger(__name__)


class ProcesadorAnticipos:
    """
    Anticipo quincenal: un proceso por mes con un ítem por guardia habilitado.
    BORRADOR → APROBADO → PAGADO. Solo los procesos aprobados o pagados se
    descuentan en la liquidación del mes.
    """

    def __init__(self, abrir_unidad, fuentes):
        self.abrir_unidad = abrir_unidad
        self.fuentes = fuentes

    def crear_proceso(self, anio: int, mes: int) -> dict:
        """
        Retorna {"proceso_id", "items", "omisiones"}; los guardias cuyo monto
        supera su tope quedan como omisiones y no generan ítem.
        """
        items, omisiones = [], []
        for gid in self.fuentes.listar_guardias_elegibles(anio, mes):
            recibe, monto, tope = self.fuentes.obtener_config_anticipo(gid)
            if not recibe or monto <= CERO:
                continue
            try:
                _validar_tope(gid, monto, tope)
            except AnticipoExcedeTopeError as e:
                logger.warning(str(e))
                omisiones.append({"guardia_id": gid, "codigo": e.codigo, "mensaje": str(e)})
                continue
            items.append((gid, redondear(monto), redondear(tope)))

        with self.abrir_unidad() as repos:
            proceso = repos.anticipos.crear_proceso(anio, mes, items)
            proceso_id = proceso.id
        logger.info(f"Proceso de anticipo {mes:02d}-{anio} creado con {len(items)} ítems ({len(omisiones)} omitidos).")
        return {"proceso_id": proceso_id, "items": len(items), "omisiones": omisiones}

    def ajustar_item(self, item_id: int, monto) -> None:
        monto = a_decimal(monto)
        if monto < CERO:
            raise ValueError("El monto del anticipo no puede ser negativo.")
        with self.abrir_unidad() as repos:
            item = repos.anticipos.get_item(item_id)
            if item is None:
                raise TransicionInvalidaError(f"No existe el ítem de anticipo {item_id}.")
            if item.proceso.estado != "BORRADOR":
                raise TransicionInvalidaError(f"El proceso de anticipo está {item.proceso.estado}; no se modifica.")
            _validar_tope(item.guardia_id, monto, a_decimal(item.tope))
            item.monto = redondear(monto)

    def _transicion(self, anio: int, mes: int, desde: str, hacia: str, fecha=None):
        with self.abrir_unidad() as repos:
            proceso = repos.anticipos.get_proceso(anio, mes)
            if proceso is None or proceso.estado != desde:
                estado = proceso.estado if proceso else "INEXISTENTE"
                raise TransicionInvalidaError(f"Anticipo {mes:02d}-{anio}: no se pasa de {estado} a {hacia}.")
            repos.anticipos.marcar_estado(proceso, hacia, fecha)
        logger.info(f"Anticipo {mes:02d}-{anio} → {hacia}.")

    def aprobar_proceso(self, anio: int, mes: int):
        self._transicion(anio, mes, "BORRADOR", "APROBADO")

    def pagar_proceso(self, anio: int, mes: int, fecha_pago: datetime = None):
        self._transicion(anio, mes, "APROBADO", "PAGADO", fecha_pago)

    def montos_anticipo_periodo(self, anio: int, mes: int) -> dict:
        with self.abrir_unidad() as repos:
            return {gid: a_decimal(m) for gid, m in repos.anticipos.montos_por_guardia(anio, mes).items()}

    def estado_proceso(self, anio: int, mes: int):
        with self.abrir_unidad() as repos:
            proceso = repos.anticipos.get_proceso(anio, mes)
            return proceso.estado if proceso else None

    def listar_items(self, anio: int, mes: int) -> list:
        with self.abrir_unidad() as repos:
            proceso = repos.anticipos.get_proceso(anio, mes)
            if proceso is None:
                return []
            return [
                {"id": i.id, "guardia_id": i.guardia_id, "monto": a_decimal(i.monto),
                 "tope": a_decimal(i.tope), "estado": i.estado}
                for i in sorted(proceso.items, key=lambda i: i.guardia_id)
            ]


def _validar_tope(guardia_id, monto, tope):
    # tope 0 = sin tope configurado
    if tope > CERO and monto > tope:
        raise AnticipoExcedeTopeError(guardia_id, monto, tope)
