import logging
from datetime import datetime

from sqlalchemy.orm import Session

from core.domain.exceptions import ProcesoAnticipoDuplicadoError
from infrastructure.database.models import ItemAnticipo, ProcesoAnticipo

logger = logging.getLogger(__name__)


class RepositorioAnticipos:
    def __init__(self, db: Session):
        self.db = db

    def get_proceso(self, anio: int, mes: int):
        return self.db.query(ProcesoAnticipo).filter_by(anio=anio, mes=mes).first()

    def get_item(self, item_id: int):
        return self.db.get(ItemAnticipo, item_id)

    def crear_proceso(self, anio: int, mes: int, items: list) -> ProcesoAnticipo:
        """ items: list[(guardia_id, monto, tope)] """
        if self.get_proceso(anio, mes) is not None:
            raise ProcesoAnticipoDuplicadoError(f"Ya existe un proceso de anticipo para {mes:02d}-{anio}.")
        proceso = ProcesoAnticipo(anio=anio, mes=mes, estado="BORRADOR")
        for guardia_id, monto, tope in items:
            proceso.items.append(ItemAnticipo(guardia_id=guardia_id, monto=monto, tope=tope, estado="BORRADOR"))
        self.db.add(proceso)
        self.db.flush()
        return proceso

    def montos_por_guardia(self, anio: int, mes: int, estados=("APROBADO", "PAGADO")) -> dict:
        """ {guardia_id: monto} de los procesos del periodo en los estados indicados """
        filas = self.db.query(ItemAnticipo.guardia_id, ItemAnticipo.monto).join(ProcesoAnticipo).filter(
            ProcesoAnticipo.anio == anio,
            ProcesoAnticipo.mes == mes,
            ProcesoAnticipo.estado.in_(estados),
        ).all()
        return {f.guardia_id: f.monto for f in filas}

    def marcar_estado(self, proceso: ProcesoAnticipo, estado: str, fecha: datetime = None):
        proceso.estado = estado
        if estado == "APROBADO":
            proceso.fecha_aprobacion = fecha or datetime.now()
        elif estado == "PAGADO":
            proceso.fecha_pago = fecha or datetime.now()
            for item in proceso.items:
                item.estado = "PAGADO"
        self.db.flush()
