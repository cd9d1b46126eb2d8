import json
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.domain.exceptions import EjecucionConcurrenteError, LiquidacionDuplicadaError
from infrastructure.database.models import BloqueoPeriodo, Liquidacion, PeriodoRemuneraciones

logger = logging.getLogger(__name__)

ESTADOS_CERRADOS = ("APROBADA", "PAGADA")


class RepositorioLiquidaciones:
    def __init__(self, db: Session):
        self.db = db

    # ── Periodos ──────────────────────────────────────────────────────────────

    def get_periodo(self, anio: int, mes: int):
        return self.db.query(PeriodoRemuneraciones).filter_by(anio=anio, mes=mes).first()

    def get_periodo_by_id(self, periodo_id: int):
        return self.db.get(PeriodoRemuneraciones, periodo_id)

    def obtener_o_crear_periodo(self, anio: int, mes: int) -> PeriodoRemuneraciones:
        periodo = self.get_periodo(anio, mes)
        if periodo is None:
            periodo = PeriodoRemuneraciones(anio=anio, mes=mes, estado="ABIERTO")
            self.db.add(periodo)
            self.db.flush()
            logger.info(f"Periodo {periodo.periodo_key} abierto.")
        return periodo

    def listar_periodos(self):
        return self.db.query(PeriodoRemuneraciones).order_by(
            PeriodoRemuneraciones.anio.desc(), PeriodoRemuneraciones.mes.desc()).all()

    # ── Bloqueo consultivo ────────────────────────────────────────────────────

    def adquirir_bloqueo(self, anio: int, mes: int, propietario: str, vencimiento: Optional[timedelta] = None) -> bool:
        """
        Inserta la fila de bloqueo del periodo. Un bloqueo sin renovar por más
        de `vencimiento` es de una ejecución caída y se toma.

        Returns:
            True si se tomó un bloqueo vencido.
        """
        ahora = datetime.now()
        actual = self.db.get(BloqueoPeriodo, (anio, mes))
        if actual is not None:
            vencido = vencimiento is not None and (
                actual.adquirido_en is None or ahora - actual.adquirido_en > vencimiento)
            if not vencido:
                raise EjecucionConcurrenteError(anio, mes, actual.propietario)
            anterior = actual.propietario
            tomados = self.db.query(BloqueoPeriodo).filter_by(
                anio=anio, mes=mes, propietario=anterior, adquirido_en=actual.adquirido_en,
            ).update({BloqueoPeriodo.propietario: propietario, BloqueoPeriodo.adquirido_en: ahora},
                     synchronize_session=False)
            if tomados != 1:
                raise EjecucionConcurrenteError(anio, mes, "otro proceso")
            logger.warning(f"Bloqueo de {mes:02d}-{anio} vencido ({anterior}, desde {actual.adquirido_en}); "
                           f"lo toma {propietario}.")
            return True
        try:
            self.db.add(BloqueoPeriodo(anio=anio, mes=mes, propietario=propietario, adquirido_en=ahora))
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            raise EjecucionConcurrenteError(anio, mes, "otro proceso") from e
        return False

    def renovar_bloqueo(self, anio: int, mes: int, propietario: str) -> bool:
        n = self.db.query(BloqueoPeriodo).filter_by(anio=anio, mes=mes, propietario=propietario).update(
            {BloqueoPeriodo.adquirido_en: datetime.now()}, synchronize_session=False)
        return n == 1

    def liberar_bloqueo(self, anio: int, mes: int, propietario: str):
        self.db.query(BloqueoPeriodo).filter_by(anio=anio, mes=mes, propietario=propietario).delete()
        self.db.flush()

    # ── Liquidaciones ─────────────────────────────────────────────────────────

    def liquidacion_vigente(self, periodo_id: int, guardia_id: int):
        return self.db.query(Liquidacion).filter_by(
            periodo_id=periodo_id, guardia_id=guardia_id, vigente=True).first()

    def get_by_id(self, liquidacion_id: int):
        return self.db.get(Liquidacion, liquidacion_id)

    def estados_por_guardia(self, periodo_id: int) -> dict:
        filas = self.db.query(Liquidacion.guardia_id, Liquidacion.estado).filter_by(
            periodo_id=periodo_id, vigente=True).all()
        return {f.guardia_id: f.estado for f in filas}

    def _asignar_resultado(self, liq: Liquidacion, resultado, estructura: dict, fuente_asistencia: str, fuente_sueldo: str):
        liq.version_parametros_id = resultado.version_parametros_id
        liq.fuente_asistencia = fuente_asistencia
        liq.fuente_sueldo = fuente_sueldo
        liq.estructura_json = json.dumps(estructura, sort_keys=True, separators=(",", ":"))
        liq.desglose_json = resultado.a_json()
        liq.huella = resultado.huella()
        liq.alertas_json = json.dumps(resultado.alertas)
        liq.total_imponible = resultado.total_imponible
        liq.total_no_imponible = resultado.total_no_imponible
        liq.total_descuentos = resultado.total_descuentos
        liq.liquido = resultado.liquido
        liq.costo_empleador = resultado.costo_empleador
        liq.fecha_calculo = datetime.now()

    def guardar_borrador(self, periodo_id: int, guardia_id: int, resultado, estructura: dict,
                         fuente_asistencia: str, fuente_sueldo: str) -> Liquidacion:
        """
        Inserta la liquidación o sobrescribe el borrador vigente.
        Nunca toca una liquidación aprobada o pagada.
        """
        liq = self.liquidacion_vigente(periodo_id, guardia_id)
        if liq is not None and liq.estado in ESTADOS_CERRADOS:
            raise LiquidacionDuplicadaError(guardia_id, liq.estado)

        if liq is None:
            liq = Liquidacion(periodo_id=periodo_id, guardia_id=guardia_id, version=1, estado="BORRADOR", vigente=True)
            self.db.add(liq)
        elif liq.huella == resultado.huella() and liq.fuente_sueldo == fuente_sueldo:
            return liq  # Mismo resultado: nada que reescribir

        self._asignar_resultado(liq, resultado, estructura, fuente_asistencia, fuente_sueldo)
        self.db.flush()
        return liq

    def crear_correccion(self, original: Liquidacion, resultado, estructura: dict,
                         fuente_asistencia: str, fuente_sueldo: str, motivo: str) -> Liquidacion:
        """Nueva versión en BORRADOR; la original queda intacta pero no vigente."""
        original.vigente = False
        self.db.flush()
        nueva = Liquidacion(
            periodo_id=original.periodo_id,
            guardia_id=original.guardia_id,
            version=original.version + 1,
            estado="BORRADOR",
            vigente=True,
            motivo_correccion=motivo,
        )
        self._asignar_resultado(nueva, resultado, estructura, fuente_asistencia, fuente_sueldo)
        self.db.add(nueva)
        self.db.flush()
        original.reemplazada_por_id = nueva.id
        self.db.flush()
        return nueva

    def listar_por_periodo(self, periodo_id: int, solo_vigentes: bool = True):
        q = self.db.query(Liquidacion).filter(Liquidacion.periodo_id == periodo_id)
        if solo_vigentes:
            q = q.filter(Liquidacion.vigente.is_(True))
        return q.order_by(Liquidacion.guardia_id, Liquidacion.version).all()

    def liquidaciones_cerradas(self, periodo_id: int) -> list:
        """Última versión APROBADA o PAGADA de cada guardia; las correcciones en borrador no cuentan."""
        filas = self.db.query(Liquidacion).filter(
            Liquidacion.periodo_id == periodo_id,
            Liquidacion.estado.in_(ESTADOS_CERRADOS),
        ).order_by(Liquidacion.guardia_id, Liquidacion.version).all()
        ultimas = {}
        for liq in filas:
            ultimas[liq.guardia_id] = liq
        return list(ultimas.values())

    def listar_por_guardia(self, guardia_id: int):
        return self.db.query(Liquidacion).filter_by(guardia_id=guardia_id).order_by(
            Liquidacion.periodo_id, Liquidacion.version).all()

    def marcar_aprobadas(self, periodo_id: int) -> int:
        return self.db.query(Liquidacion).filter(
            Liquidacion.periodo_id == periodo_id,
            Liquidacion.vigente.is_(True),
            Liquidacion.estado == "BORRADOR",
        ).update({Liquidacion.estado: "APROBADA"}, synchronize_session=False)

    def marcar_pagadas(self, periodo_id: int, fecha_pago: datetime) -> int:
        return self.db.query(Liquidacion).filter(
            Liquidacion.periodo_id == periodo_id,
            Liquidacion.vigente.is_(True),
            Liquidacion.estado.in_(("BORRADOR", "APROBADA")),
        ).update({Liquidacion.estado: "PAGADA", Liquidacion.fecha_pago: fecha_pago}, synchronize_session=False)
