"""
Procesamiento por lotes de las liquidaciones de un periodo.

Estados del periodo: ABIERTO → PROCESANDO → BORRADOR → APROBADO → PAGADO.

El cálculo de cada guardia es independiente: se ejecuta en un pool de hilos
acotado y cada liquidación se guarda en su propia transacción, de modo que
una caída a mitad de camino deja un estado parcial que se puede reanudar.
Los errores por guardia (sin estructura, sin asistencia, ...) se acumulan en
el informe y no detienen el lote. La falta de parámetros legales sí lo detiene.
"""
import json
import logging
import os
import socket
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Optional

from core.domain.exceptions import (ErrorPorGuardia, ExportacionNoDisponibleError, LiquidacionDuplicadaError,
                                    OmisionesPendientesError, PeriodoCerradoError, SinAsistenciaError,
                                    SinDatosPrevisionalesError, SueldoCeroError, SueldoLiquidoNegativoError,
                                    TransicionInvalidaError)
from core.domain.montos import CERO, a_decimal
from core.use_cases import generador_interfaces
from core.use_cases.feriados import contar_horas_feriado
from core.use_cases.resolucion_sueldo import ResolvedorSueldo
from core.use_cases.simulador_liquidacion import EntradaLiquidacion, simular_liquidacion

logger = logging.getLogger(__name__)

ESTADOS_RECALCULABLES = ("ABIERTO", "BORRADOR")
ESTADOS_EXPORTABLES = ("APROBADO", "PAGADO")


@dataclass
class Omision:
    guardia_id: int
    codigo: str
    mensaje: str


@dataclass
class CalculoGuardia:
    guardia_id: int
    resultado: object
    estructura: dict
    fuente_asistencia: str
    fuente_sueldo: str


@dataclass
class InformeEjecucion:
    anio: int
    mes: int
    version_parametros_id: Optional[str] = None
    procesados: list = field(default_factory=list)
    omisiones: list = field(default_factory=list)
    alertas: list = field(default_factory=list)  # [{"guardia_id": .., "alerta": ..}]
    existentes_omitidos: list = field(default_factory=list)
    pendientes: list = field(default_factory=list)
    cancelado: bool = False

    def omitir(self, guardia_id: int, codigo: str, mensaje: str):
        self.omisiones.append(Omision(guardia_id, codigo, mensaje))

    @property
    def tiene_pendientes_de_revision(self) -> bool:
        return bool(self.omisiones or self.alertas)

    def fusionar(self, parcial: "InformeEjecucion", guardia_ids: list) -> "InformeEjecucion":
        """Reemplaza en este informe las entradas de `guardia_ids` por las del recálculo parcial."""
        ids = set(guardia_ids)
        self.version_parametros_id = parcial.version_parametros_id
        self.procesados = [g for g in self.procesados if g not in ids] + parcial.procesados
        self.omisiones = [o for o in self.omisiones if o.guardia_id not in ids] + parcial.omisiones
        self.alertas = [a for a in self.alertas if a["guardia_id"] not in ids] + parcial.alertas
        self.existentes_omitidos = [g for g in self.existentes_omitidos if g not in ids] + parcial.existentes_omitidos
        return self

    def a_dict(self) -> dict:
        return {
            "anio": self.anio,
            "mes": self.mes,
            "version_parametros_id": self.version_parametros_id,
            "procesados": sorted(self.procesados),
            "omisiones": [o.__dict__ for o in sorted(self.omisiones, key=lambda o: o.guardia_id)],
            "alertas": sorted(self.alertas, key=lambda a: (a["guardia_id"], a["alerta"])),
            "existentes_omitidos": sorted(self.existentes_omitidos),
            "pendientes": sorted(self.pendientes),
            "cancelado": self.cancelado,
        }

    @classmethod
    def desde_dict(cls, datos: dict) -> "InformeEjecucion":
        informe = cls(anio=datos["anio"], mes=datos["mes"])
        informe.version_parametros_id = datos.get("version_parametros_id")
        informe.procesados = list(datos.get("procesados", []))
        informe.omisiones = [Omision(**o) for o in datos.get("omisiones", [])]
        informe.alertas = list(datos.get("alertas", []))
        informe.existentes_omitidos = list(datos.get("existentes_omitidos", []))
        informe.pendientes = list(datos.get("pendientes", []))
        informe.cancelado = bool(datos.get("cancelado", False))
        return informe


class ProcesadorLiquidaciones:
    """
    Args:
        abrir_unidad: callable que retorna un context manager con los
            repositorios (`parametros`, `liquidaciones`, `anticipos`) en una transacción.
        fuentes: implementación de las interfaces de lectura (asistencia,
            estructura de sueldo, guardias, perfil de pago y feriados).
        max_trabajadores: tamaño del pool de cálculo.
        vencimiento_bloqueo: tiempo sin progreso tras el cual el bloqueo de
            una ejecución caída se puede tomar.
    """

    def __init__(self, abrir_unidad, fuentes, max_trabajadores: int = 4, glosa_banco: str = "REMUNERACION",
                 vencimiento_bloqueo: timedelta = timedelta(minutes=30)):
        self.abrir_unidad = abrir_unidad
        self.fuentes = fuentes
        self.resolvedor = ResolvedorSueldo(fuentes)
        self.max_trabajadores = max(1, int(max_trabajadores))
        self.glosa_banco = glosa_banco
        self.vencimiento_bloqueo = vencimiento_bloqueo
        self.propietario = f"{socket.gethostname()}:{os.getpid()}"

    # ── Cálculo de un guardia (se ejecuta en los hilos) ───────────────────────

    def _calcular_guardia(self, guardia_id: int, anio: int, mes: int, snapshot, anticipos: dict, feriados: list) -> CalculoGuardia:
        datos = self.fuentes.obtener_datos_previsionales(guardia_id)
        if datos is None or not datos.afp:
            raise SinDatosPrevisionalesError(guardia_id)

        sueldo = self.resolvedor.resolver_sueldo_efectivo(guardia_id, date(anio, mes, 1))
        if a_decimal(sueldo.estructura.sueldo_base) <= CERO:
            raise SueldoCeroError(guardia_id)

        asistencia = self.fuentes.obtener_asistencia(guardia_id, anio, mes)
        if asistencia is None:
            raise SinAsistenciaError(guardia_id, anio, mes)
        if feriados and asistencia.detalle_diario and a_decimal(asistencia.horas_feriado) == CERO:
            asistencia = replace(asistencia, horas_feriado=contar_horas_feriado(asistencia.detalle_diario, feriados))

        entrada = EntradaLiquidacion(
            estructura=sueldo.estructura,
            asistencia=asistencia,
            snapshot=snapshot,
            afp=datos.afp,
            sistema_salud=datos.sistema_salud,
            tipo_contrato=datos.tipo_contrato,
            bonos=sueldo.bonos,
            porcentaje_isapre=datos.porcentaje_isapre,
            nombre_isapre=datos.nombre_isapre,
            cargas_familiares=datos.cargas_familiares,
            renta_referencia_asignacion=datos.renta_promedio_asignacion,
            asignacion_maternal=datos.asignacion_maternal,
            asignacion_invalidez=datos.asignacion_invalidez,
            apv=datos.apv,
            anticipo=anticipos.get(guardia_id, CERO),
        )
        resultado = simular_liquidacion(entrada)
        return CalculoGuardia(
            guardia_id=guardia_id,
            resultado=resultado,
            estructura=sueldo.estructura.a_dict(),
            fuente_asistencia=asistencia.fuente,
            fuente_sueldo=sueldo.fuente,
        )

    def _registrar(self, futuro, guardia_id: int, periodo_id: int, informe: InformeEjecucion):
        try:
            calculo = futuro.result()
        except ErrorPorGuardia as e:
            logger.warning(f"Guardia {guardia_id} omitido ({e.codigo}): {e}")
            informe.omitir(guardia_id, e.codigo, str(e))
            return
        except Exception as e:
            logger.exception(f"Error inesperado calculando al guardia {guardia_id}")
            informe.omitir(guardia_id, "ERROR", str(e))
            return

        try:
            with self.abrir_unidad() as repos:
                repos.liquidaciones.guardar_borrador(
                    periodo_id, guardia_id, calculo.resultado, calculo.estructura,
                    calculo.fuente_asistencia, calculo.fuente_sueldo,
                )
                if not repos.liquidaciones.renovar_bloqueo(informe.anio, informe.mes, self.propietario):
                    logger.warning(f"El bloqueo de {informe.mes:02d}-{informe.anio} ya no es de {self.propietario}.")
        except LiquidacionDuplicadaError as e:
            informe.omitir(guardia_id, e.codigo, str(e))
            return
        except Exception as e:
            logger.exception(f"No se pudo guardar la liquidación del guardia {guardia_id}")
            informe.omitir(guardia_id, "ERROR", str(e))
            return

        informe.procesados.append(guardia_id)
        for alerta in calculo.resultado.alertas:
            informe.alertas.append({"guardia_id": guardia_id, "alerta": alerta})

    # ── Ejecución del periodo ─────────────────────────────────────────────────

    def ejecutar_periodo(self, anio: int, mes: int, recalcular_borradores: bool = True,
                         guardia_ids: list = None, cancelacion=None) -> InformeEjecucion:
        """
        Calcula (o recalcula) las liquidaciones del periodo.

        Args:
            recalcular_borradores: True sobrescribe los borradores existentes;
                False reanuda y solo calcula guardias sin liquidación.
            guardia_ids: limita el cálculo a esos guardias (recálculo parcial).
            cancelacion: threading.Event; si se activa no se envían más guardias al pool.

        Raises:
            EjecucionConcurrenteError, PeriodoCerradoError, ParametroNoEncontradoError
        """
        with self.abrir_unidad() as repos:
            repos.liquidaciones.adquirir_bloqueo(anio, mes, self.propietario, self.vencimiento_bloqueo)
        logger.info(f"Bloqueo del periodo {mes:02d}-{anio} adquirido por {self.propietario}.")

        estado_previo = None
        try:
            with self.abrir_unidad() as repos:
                periodo = repos.liquidaciones.obtener_o_crear_periodo(anio, mes)
                estado_base = periodo.estado
                if estado_base == "PROCESANDO":
                    # Con el bloqueo en mano, PROCESANDO solo puede venir de una ejecución caída
                    estado_base = "BORRADOR" if repos.liquidaciones.estados_por_guardia(periodo.id) else "ABIERTO"
                    logger.warning(f"El periodo {periodo.periodo_key} quedó en PROCESANDO; se reanuda como {estado_base}.")
                if estado_base not in ESTADOS_RECALCULABLES:
                    raise PeriodoCerradoError(f"El periodo {periodo.periodo_key} está {periodo.estado}.")
                if periodo.version_parametros_id:
                    snapshot = repos.parametros.resolver_snapshot(version_id=periodo.version_parametros_id)
                else:
                    snapshot = repos.parametros.resolver_snapshot(fecha=date(anio, mes, 1))
                    periodo.version_parametros_id = snapshot.version_id
                estado_previo = estado_base
                periodo.estado = "PROCESANDO"
                periodo_id = periodo.id
                informe_previo = periodo.informe_json
                estados = repos.liquidaciones.estados_por_guardia(periodo_id)
                anticipos = repos.anticipos.montos_por_guardia(anio, mes)

            informe = InformeEjecucion(anio=anio, mes=mes, version_parametros_id=snapshot.version_id)
            feriados = self.fuentes.listar_feriados(anio, mes)
            candidatos = list(guardia_ids) if guardia_ids else self.fuentes.listar_guardias_elegibles(anio, mes)

            por_calcular = []
            for gid in candidatos:
                estado = estados.get(gid)
                if estado in ("APROBADA", "PAGADA"):
                    informe.omitir(gid, LiquidacionDuplicadaError.codigo,
                                   f"El guardia {gid} ya tiene una liquidación {estado}.")
                elif estado == "BORRADOR" and not recalcular_borradores:
                    informe.existentes_omitidos.append(gid)
                else:
                    por_calcular.append(gid)

            logger.info(f"Periodo {mes:02d}-{anio}: {len(por_calcular)} guardias a calcular "
                        f"con parámetros {snapshot.version_id}.")
            self._procesar_en_pool(por_calcular, anio, mes, periodo_id, snapshot, anticipos, feriados,
                                   informe, cancelacion)

            if guardia_ids and informe_previo:
                informe = InformeEjecucion.desde_dict(json.loads(informe_previo)).fusionar(informe, guardia_ids)

            with self.abrir_unidad() as repos:
                periodo = repos.liquidaciones.get_periodo_by_id(periodo_id)
                periodo.estado = "BORRADOR"
                periodo.informe_json = json.dumps(informe.a_dict(), ensure_ascii=False)
            estado_previo = None

            logger.info(f"Periodo {mes:02d}-{anio}: {len(informe.procesados)} liquidaciones, "
                        f"{len(informe.omisiones)} omisiones, {len(informe.alertas)} alertas.")
            return informe
        finally:
            with self.abrir_unidad() as repos:
                if estado_previo is not None:
                    periodo = repos.liquidaciones.get_periodo(anio, mes)
                    if periodo is not None and periodo.estado == "PROCESANDO":
                        periodo.estado = estado_previo
                repos.liquidaciones.liberar_bloqueo(anio, mes, self.propietario)
            logger.info(f"Bloqueo del periodo {mes:02d}-{anio} liberado.")

    def _procesar_en_pool(self, guardia_ids, anio, mes, periodo_id, snapshot, anticipos, feriados,
                          informe, cancelacion):
        pendientes = iter(guardia_ids)
        en_vuelo = {}
        limite = self.max_trabajadores * 2
        with ThreadPoolExecutor(max_workers=self.max_trabajadores, thread_name_prefix="liquidacion") as pool:
            while True:
                while len(en_vuelo) < limite and not informe.cancelado:
                    if cancelacion is not None and cancelacion.is_set():
                        informe.cancelado = True
                        break
                    gid = next(pendientes, None)
                    if gid is None:
                        break
                    futuro = pool.submit(self._calcular_guardia, gid, anio, mes, snapshot, anticipos, feriados)
                    en_vuelo[futuro] = gid
                if not en_vuelo:
                    break
                listos, _ = wait(en_vuelo, return_when=FIRST_COMPLETED)
                for futuro in listos:
                    self._registrar(futuro, en_vuelo.pop(futuro), periodo_id, informe)

        if informe.cancelado:
            informe.pendientes = list(pendientes)
            logger.warning(f"Ejecución cancelada: {len(informe.pendientes)} guardias sin enviar.")

    def recalcular_guardia(self, anio: int, mes: int, guardia_id: int) -> InformeEjecucion:
        """Recalcula un guardia; rechaza si su liquidación ya está aprobada o pagada."""
        with self.abrir_unidad() as repos:
            periodo = repos.liquidaciones.get_periodo(anio, mes)
            if periodo is not None:
                liq = repos.liquidaciones.liquidacion_vigente(periodo.id, guardia_id)
                if liq is not None and liq.estado in ("APROBADA", "PAGADA"):
                    raise LiquidacionDuplicadaError(guardia_id, liq.estado)
        return self.ejecutar_periodo(anio, mes, recalcular_borradores=True, guardia_ids=[guardia_id])

    # ── Transiciones de estado ────────────────────────────────────────────────

    @staticmethod
    def _verificar_revision(periodo, reconocer_omisiones: bool):
        if reconocer_omisiones or not periodo.informe_json:
            return
        informe = InformeEjecucion.desde_dict(json.loads(periodo.informe_json))
        if informe.omisiones:
            raise OmisionesPendientesError(informe.omisiones, informe.alertas)
        if informe.alertas:
            raise SueldoLiquidoNegativoError(informe.omisiones, informe.alertas)

    def aprobar_periodo(self, anio: int, mes: int, reconocer_omisiones: bool = False) -> int:
        with self.abrir_unidad() as repos:
            periodo = repos.liquidaciones.get_periodo(anio, mes)
            if periodo is None or periodo.estado != "BORRADOR":
                estado = periodo.estado if periodo else "INEXISTENTE"
                raise TransicionInvalidaError(f"Solo se aprueba un periodo en BORRADOR (actual: {estado}).")
            self._verificar_revision(periodo, reconocer_omisiones)
            n = repos.liquidaciones.marcar_aprobadas(periodo.id)
            periodo.estado = "APROBADO"
            periodo.fecha_aprobacion = datetime.now()
        logger.info(f"Periodo {mes:02d}-{anio} aprobado ({n} liquidaciones).")
        return n

    def pagar_periodo(self, anio: int, mes: int, fecha_pago: datetime = None, reconocer_omisiones: bool = False) -> int:
        """
        Marca como PAGADA cada liquidación vigente del periodo y finaliza el
        proceso de anticipo aprobado del mismo mes. Un periodo ya pagado se
        puede volver a pagar solo para liquidar correcciones en borrador.
        """
        fecha_pago = fecha_pago or datetime.now()
        with self.abrir_unidad() as repos:
            periodo = repos.liquidaciones.get_periodo(anio, mes)
            if periodo is None or periodo.estado not in ("BORRADOR", "APROBADO", "PAGADO"):
                estado = periodo.estado if periodo else "INEXISTENTE"
                raise TransicionInvalidaError(f"No se puede pagar un periodo en estado {estado}.")
            if periodo.estado == "BORRADOR":
                self._verificar_revision(periodo, reconocer_omisiones)
            n = repos.liquidaciones.marcar_pagadas(periodo.id, fecha_pago)
            if periodo.estado == "PAGADO" and n == 0:
                raise TransicionInvalidaError(f"El periodo {periodo.periodo_key} ya está pagado.")
            periodo.estado = "PAGADO"
            periodo.fecha_pago = fecha_pago

            proceso = repos.anticipos.get_proceso(anio, mes)
            if proceso is not None:
                if proceso.estado == "APROBADO":
                    repos.anticipos.marcar_estado(proceso, "PAGADO", fecha_pago)
                elif proceso.estado == "BORRADOR":
                    logger.warning(f"Anticipo {mes:02d}-{anio} sigue en BORRADOR; no se descontó ni se finaliza.")
        logger.info(f"Periodo {mes:02d}-{anio} pagado ({n} liquidaciones).")
        return n

    def corregir_liquidacion(self, liquidacion_id: int, motivo: str):
        """Crea una nueva versión en borrador; la liquidación original no se edita."""
        with self.abrir_unidad() as repos:
            liq = repos.liquidaciones.get_by_id(liquidacion_id)
            if liq is None or not liq.vigente:
                raise TransicionInvalidaError(f"La liquidación {liquidacion_id} no existe o ya fue reemplazada.")
            if liq.estado == "BORRADOR":
                raise TransicionInvalidaError("Un borrador se recalcula, no se corrige.")
            periodo = liq.periodo
            anio, mes, guardia_id = periodo.anio, periodo.mes, liq.guardia_id
            snapshot = repos.parametros.resolver_snapshot(version_id=periodo.version_parametros_id)
            anticipos = repos.anticipos.montos_por_guardia(anio, mes)

        calculo = self._calcular_guardia(guardia_id, anio, mes, snapshot, anticipos, self.fuentes.listar_feriados(anio, mes))

        with self.abrir_unidad() as repos:
            original = repos.liquidaciones.get_by_id(liquidacion_id)
            nueva = repos.liquidaciones.crear_correccion(
                original, calculo.resultado, calculo.estructura,
                calculo.fuente_asistencia, calculo.fuente_sueldo, motivo,
            )
            nueva_id = nueva.id
        logger.info(f"Liquidación {liquidacion_id} corregida con la versión {nueva_id}: {motivo}")
        return nueva_id

    # ── Consultas ─────────────────────────────────────────────────────────────

    def listar_liquidaciones(self, anio: int, mes: int) -> list:
        with self.abrir_unidad() as repos:
            periodo = repos.liquidaciones.get_periodo(anio, mes)
            if periodo is None:
                return []
            return [liquidacion_a_dict(l) for l in repos.liquidaciones.listar_por_periodo(periodo.id)]

    def liquidaciones_por_guardia(self, guardia_id: int) -> list:
        with self.abrir_unidad() as repos:
            return [liquidacion_a_dict(l) for l in repos.liquidaciones.listar_por_guardia(guardia_id)]

    # ── Exportaciones ─────────────────────────────────────────────────────────

    def exportar_periodo(self, anio: int, mes: int, tipo: str):
        """
        Genera un archivo ('previred', 'libro' o 'banco') desde las
        liquidaciones guardadas. Nunca recalcula.

        Solo entran versiones APROBADA o PAGADA. Si un guardia tiene una
        corrección en borrador se exporta su última versión cerrada y el
        borrador queda informado en las omisiones.
        """
        with self.abrir_unidad() as repos:
            periodo = repos.liquidaciones.get_periodo(anio, mes)
            if periodo is None or periodo.estado not in ESTADOS_EXPORTABLES:
                estado = periodo.estado if periodo else "INEXISTENTE"
                raise ExportacionNoDisponibleError(
                    f"El periodo {mes:02d}-{anio} está {estado}; se exporta solo APROBADO o PAGADO.")
            liquidaciones = [liquidacion_a_dict(l) for l in repos.liquidaciones.liquidaciones_cerradas(periodo.id)]
            borradores = [l.guardia_id for l in repos.liquidaciones.listar_por_periodo(periodo.id)
                          if l.estado == "BORRADOR"]

        perfiles = {l["guardia_id"]: self.fuentes.obtener_perfil_pago(l["guardia_id"]) for l in liquidaciones}
        archivo = generador_interfaces.exportar_periodo(
            tipo, anio, mes, liquidaciones, perfiles, glosa=self.glosa_banco)

        exportados = {l["guardia_id"] for l in liquidaciones}
        for gid in borradores:
            if gid in exportados:
                mensaje = f"Guardia {gid}: corrección en BORRADOR no incluida; se usa la última versión cerrada."
            else:
                mensaje = f"Guardia {gid}: solo tiene una liquidación en BORRADOR; no se exporta."
            logger.warning(mensaje)
            archivo.omisiones.append(generador_interfaces.OmisionExportacion(gid, "estado", mensaje))
        return archivo


def liquidacion_a_dict(liq) -> dict:
    """Fila ORM → dict plano (sobrevive al cierre de la sesión)."""
    return {
        "id": liq.id,
        "periodo_id": liq.periodo_id,
        "guardia_id": liq.guardia_id,
        "version": liq.version,
        "estado": liq.estado,
        "vigente": liq.vigente,
        "version_parametros_id": liq.version_parametros_id,
        "fuente_asistencia": liq.fuente_asistencia,
        "fuente_sueldo": liq.fuente_sueldo,
        "desglose": json.loads(liq.desglose_json),
        "desglose_json": liq.desglose_json,
        "estructura": json.loads(liq.estructura_json),
        "huella": liq.huella,
        "alertas": json.loads(liq.alertas_json or "[]"),
        "liquido": a_decimal(liq.liquido),
        "fecha_pago": liq.fecha_pago,
    }
