import threading
from dataclasses import replace
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from core.domain.exceptions import (EjecucionConcurrenteError, ExportacionNoDisponibleError,
                                    LiquidacionDuplicadaError, OmisionesPendientesError, ParametroNoEncontradoError,
                                    PeriodoCerradoError, SueldoLiquidoNegativoError, TransicionInvalidaError)
from core.use_cases.proceso_anticipos import ProcesadorAnticipos
from core.use_cases.proceso_liquidaciones import InformeEjecucion, Omision, ProcesadorLiquidaciones
from infrastructure.database.db_manager import get_db_session
from infrastructure.database.models import (AsistenciaMensual, BloqueoPeriodo, Guardia, Liquidacion,
                                             PeriodoRemuneraciones)
from infrastructure.repositories.repo_guardias import FuentesSQL

ANIO, MES = 2026, 2

D = Decimal


@pytest.fixture
def procesador(abrir_unidad, fuentes):
    return ProcesadorLiquidaciones(abrir_unidad, fuentes, max_trabajadores=2)


def _estado_periodo(fabrica, anio=ANIO, mes=MES):
    with get_db_session(fabrica) as db:
        periodo = db.query(PeriodoRemuneraciones).filter_by(anio=anio, mes=mes).first()
        return periodo.estado if periodo else None


def _marcar_liquidacion(fabrica, guardia_id, estado):
    with get_db_session(fabrica) as db:
        db.query(Liquidacion).filter_by(guardia_id=guardia_id, vigente=True).update({"estado": estado})


def _por_guardia(procesador):
    return {l["guardia_id"]: l for l in procesador.listar_liquidaciones(ANIO, MES)}


# ── Ejecución del lote ────────────────────────────────────────────────────────

def test_lote_omite_guardias_sin_datos_y_sigue(procesador, crear_guardia, fabrica):
    g1 = crear_guardia()
    g2 = crear_guardia()
    sin_estructura = crear_guardia(con_estructura=False)
    sin_asistencia = crear_guardia(con_asistencia=False)

    informe = procesador.ejecutar_periodo(ANIO, MES)

    assert sorted(informe.procesados) == [g1, g2]
    codigos = {o.guardia_id: o.codigo for o in informe.omisiones}
    assert codigos == {sin_estructura: "SIN_ESTRUCTURA", sin_asistencia: "SIN_ASISTENCIA"}
    assert informe.version_parametros_id == "CL-2026-02"
    assert _estado_periodo(fabrica) == "BORRADOR"

    liquidaciones = _por_guardia(procesador)
    assert set(liquidaciones) == {g1, g2}
    liq = liquidaciones[g1]
    assert liq["estado"] == "BORRADOR"
    assert liq["version"] == 1
    assert liq["liquido"] == D("816495")
    assert liq["fuente_sueldo"] == "RUT"
    assert liq["fuente_asistencia"] == "INTERNA"
    assert liq["desglose"]["costo_empleador"] == "1046516"
    assert liq["estructura"]["tipo_gratificacion"] == "AUTOMATICA"


def test_guardia_con_sueldo_del_puesto(procesador, crear_guardia, crear_instalacion):
    instalacion_id = crear_instalacion(sueldo_base=700000)
    gid = crear_guardia(con_estructura=False, instalacion_id=instalacion_id)

    informe = procesador.ejecutar_periodo(ANIO, MES)

    assert informe.procesados == [gid]
    liq = _por_guardia(procesador)[gid]
    assert liq["fuente_sueldo"] == "PUESTO"
    assert liq["desglose"]["sueldo_base"] == "700000"


def test_sin_datos_previsionales(abrir_unidad, fabrica, crear_guardia):
    gid = crear_guardia()

    class FuentesSinPrevision(FuentesSQL):
        def obtener_datos_previsionales(self, guardia_id):
            return None

    informe = ProcesadorLiquidaciones(abrir_unidad, FuentesSinPrevision(fabrica)).ejecutar_periodo(ANIO, MES)
    assert [(o.guardia_id, o.codigo) for o in informe.omisiones] == [(gid, "SIN_DATOS_PREVISIONALES")]


def test_recalculo_idempotente(procesador, crear_guardia):
    g1 = crear_guardia()
    g2 = crear_guardia(sueldo_base=1500000)

    procesador.ejecutar_periodo(ANIO, MES)
    primera = _por_guardia(procesador)
    procesador.ejecutar_periodo(ANIO, MES)
    segunda = _por_guardia(procesador)

    for gid in (g1, g2):
        assert segunda[gid]["id"] == primera[gid]["id"]
        assert segunda[gid]["huella"] == primera[gid]["huella"]
        assert segunda[gid]["desglose_json"] == primera[gid]["desglose_json"]
    assert segunda[g2]["liquido"] == D("1371256")


def test_reanudar_no_recalcula_borradores(procesador, crear_guardia):
    g1 = crear_guardia()
    procesador.ejecutar_periodo(ANIO, MES)
    g2 = crear_guardia()

    informe = procesador.ejecutar_periodo(ANIO, MES, recalcular_borradores=False)

    assert informe.existentes_omitidos == [g1]
    assert informe.procesados == [g2]


def test_liquidacion_aprobada_no_se_toca(procesador, crear_guardia, fabrica):
    g1 = crear_guardia()
    g2 = crear_guardia()
    procesador.ejecutar_periodo(ANIO, MES)
    antes = _por_guardia(procesador)[g1]
    _marcar_liquidacion(fabrica, g1, "APROBADA")

    informe = procesador.ejecutar_periodo(ANIO, MES)

    assert informe.procesados == [g2]
    assert [(o.guardia_id, o.codigo) for o in informe.omisiones] == [(g1, "LIQUIDACION_PAGADA")]
    despues = _por_guardia(procesador)[g1]
    assert despues["estado"] == "APROBADA"
    assert despues["desglose_json"] == antes["desglose_json"]

    with pytest.raises(LiquidacionDuplicadaError):
        procesador.recalcular_guardia(ANIO, MES, g1)


def test_periodo_aprobado_no_se_recalcula(procesador, crear_guardia, abrir_unidad):
    crear_guardia()
    procesador.ejecutar_periodo(ANIO, MES)
    procesador.aprobar_periodo(ANIO, MES)

    with pytest.raises(PeriodoCerradoError):
        procesador.ejecutar_periodo(ANIO, MES)

    # El bloqueo quedó liberado
    with abrir_unidad() as repos:
        repos.liquidaciones.adquirir_bloqueo(ANIO, MES, "prueba")


def test_ejecucion_concurrente_rechazada(procesador, crear_guardia, abrir_unidad, fabrica):
    crear_guardia()
    with abrir_unidad() as repos:
        repos.liquidaciones.adquirir_bloqueo(ANIO, MES, "otro-host:99")

    with pytest.raises(EjecucionConcurrenteError):
        procesador.ejecutar_periodo(ANIO, MES)
    assert _estado_periodo(fabrica) is None

    with abrir_unidad() as repos:
        repos.liquidaciones.liberar_bloqueo(ANIO, MES, "otro-host:99")
    assert len(procesador.ejecutar_periodo(ANIO, MES).procesados) == 1


def _simular_ejecucion_caida(fabrica, con_bloqueo=True):
    with get_db_session(fabrica) as db:
        db.query(PeriodoRemuneraciones).filter_by(anio=ANIO, mes=MES).update({"estado": "PROCESANDO"})
        if con_bloqueo:
            db.add(BloqueoPeriodo(anio=ANIO, mes=MES, propietario="host-caido:123",
                                  adquirido_en=datetime.now() - timedelta(hours=2)))


def test_reanudar_tras_ejecucion_caida(procesador, crear_guardia, fabrica):
    g1 = crear_guardia()
    procesador.ejecutar_periodo(ANIO, MES)
    _simular_ejecucion_caida(fabrica)
    g2 = crear_guardia()

    informe = procesador.ejecutar_periodo(ANIO, MES, recalcular_borradores=False)

    assert informe.existentes_omitidos == [g1]
    assert informe.procesados == [g2]
    assert _estado_periodo(fabrica) == "BORRADOR"
    with get_db_session(fabrica) as db:
        assert db.query(BloqueoPeriodo).count() == 0


def test_bloqueo_reciente_de_otra_ejecucion_se_respeta(procesador, crear_guardia, fabrica):
    crear_guardia()
    procesador.ejecutar_periodo(ANIO, MES)
    _simular_ejecucion_caida(fabrica, con_bloqueo=False)
    with get_db_session(fabrica) as db:
        db.add(BloqueoPeriodo(anio=ANIO, mes=MES, propietario="otro-host:99",
                              adquirido_en=datetime.now() - timedelta(minutes=5)))

    with pytest.raises(EjecucionConcurrenteError):
        procesador.ejecutar_periodo(ANIO, MES)
    assert _estado_periodo(fabrica) == "PROCESANDO"


def test_procesando_sin_bloqueo_se_reanuda(procesador, crear_guardia, fabrica):
    gid = crear_guardia()
    procesador.ejecutar_periodo(ANIO, MES)
    _simular_ejecucion_caida(fabrica, con_bloqueo=False)

    informe = procesador.ejecutar_periodo(ANIO, MES)

    assert informe.procesados == [gid]
    assert _estado_periodo(fabrica) == "BORRADOR"


def test_sin_parametros_legales_aborta(procesador, crear_guardia, abrir_unidad):
    crear_guardia(anio=2020, mes=1)

    with pytest.raises(ParametroNoEncontradoError):
        procesador.ejecutar_periodo(2020, 1)

    with abrir_unidad() as repos:
        assert repos.liquidaciones.get_periodo(2020, 1) is None
        repos.liquidaciones.adquirir_bloqueo(2020, 1, "prueba")


def test_version_de_parametros_queda_fijada(procesador, crear_guardia, abrir_unidad, snapshot):
    gid = crear_guardia()
    procesador.ejecutar_periodo(ANIO, MES)

    nueva = replace(snapshot, version_id="CL-2026-02-B", vigente_desde=date(2026, 2, 1), valor_uf=D("45000"))
    with abrir_unidad() as repos:
        repos.parametros.registrar_version(nueva)

    informe = procesador.ejecutar_periodo(ANIO, MES)
    assert informe.version_parametros_id == "CL-2026-02"
    assert _por_guardia(procesador)[gid]["version_parametros_id"] == "CL-2026-02"


def test_cancelacion_antes_de_enviar(procesador, crear_guardia):
    ids = [crear_guardia() for _ in range(3)]
    cancelacion = threading.Event()
    cancelacion.set()

    informe = procesador.ejecutar_periodo(ANIO, MES, cancelacion=cancelacion)

    assert informe.cancelado
    assert informe.procesados == []
    assert informe.pendientes == ids


def test_lote_grande_con_varios_hilos(abrir_unidad, fuentes, crear_guardia):
    ids = [crear_guardia(sueldo_base=600000 + 10000 * i) for i in range(12)]
    informe = ProcesadorLiquidaciones(abrir_unidad, fuentes, max_trabajadores=4).ejecutar_periodo(ANIO, MES)
    assert sorted(informe.procesados) == ids
    assert informe.omisiones == []


def test_recalculo_parcial_fusiona_informe(procesador, crear_guardia, fabrica):
    g1 = crear_guardia()
    g2 = crear_guardia(con_asistencia=False)
    informe = procesador.ejecutar_periodo(ANIO, MES)
    assert [o.guardia_id for o in informe.omisiones] == [g2]

    with get_db_session(fabrica) as db:
        db.add(AsistenciaMensual(guardia_id=g2, anio=ANIO, mes=MES, dias_mes=30,
                                 dias_trabajados=30, dias_programados=30))

    informe = procesador.recalcular_guardia(ANIO, MES, g2)

    assert sorted(informe.procesados) == [g1, g2]
    assert informe.omisiones == []
    assert procesador.aprobar_periodo(ANIO, MES) == 2


# ── Informe ───────────────────────────────────────────────────────────────────

def test_informe_serializable_y_ordenado():
    informe = InformeEjecucion(anio=ANIO, mes=MES, version_parametros_id="CL-2026-02")
    informe.procesados = [3, 1]
    informe.omitir(5, "SIN_ASISTENCIA", "sin asistencia")
    informe.omitir(2, "SIN_ESTRUCTURA", "sin estructura")
    informe.alertas = [{"guardia_id": 3, "alerta": "NETO_NEGATIVO"}]

    datos = informe.a_dict()
    assert datos["procesados"] == [1, 3]
    assert [o["guardia_id"] for o in datos["omisiones"]] == [2, 5]

    copia = InformeEjecucion.desde_dict(datos)
    assert copia.omisiones[0] == Omision(2, "SIN_ESTRUCTURA", "sin estructura")
    assert copia.tiene_pendientes_de_revision


# ── Aprobación y pago ─────────────────────────────────────────────────────────

def test_aprobar_exige_reconocer_omisiones(procesador, crear_guardia, fabrica):
    crear_guardia()
    crear_guardia(con_estructura=False)
    procesador.ejecutar_periodo(ANIO, MES)

    with pytest.raises(OmisionesPendientesError):
        procesador.aprobar_periodo(ANIO, MES)
    assert _estado_periodo(fabrica) == "BORRADOR"

    assert procesador.aprobar_periodo(ANIO, MES, reconocer_omisiones=True) == 1
    assert _estado_periodo(fabrica) == "APROBADO"
    assert all(l["estado"] == "APROBADA" for l in procesador.listar_liquidaciones(ANIO, MES))


def test_aprobar_exige_reconocer_liquido_negativo(procesador, crear_guardia):
    gid = crear_guardia(apv_mensual=2000000)
    informe = procesador.ejecutar_periodo(ANIO, MES)
    assert informe.alertas == [{"guardia_id": gid, "alerta": "NETO_NEGATIVO"}]
    assert _por_guardia(procesador)[gid]["liquido"] == D("0")

    with pytest.raises(SueldoLiquidoNegativoError):
        procesador.aprobar_periodo(ANIO, MES)
    assert procesador.aprobar_periodo(ANIO, MES, reconocer_omisiones=True) == 1


def test_transiciones_invalidas(procesador, crear_guardia):
    with pytest.raises(TransicionInvalidaError):
        procesador.aprobar_periodo(ANIO, MES)
    with pytest.raises(TransicionInvalidaError):
        procesador.pagar_periodo(ANIO, MES)

    crear_guardia()
    procesador.ejecutar_periodo(ANIO, MES)
    procesador.aprobar_periodo(ANIO, MES)
    with pytest.raises(TransicionInvalidaError):
        procesador.aprobar_periodo(ANIO, MES)


def test_pagar_periodo(procesador, crear_guardia, fabrica):
    crear_guardia()
    crear_guardia()
    procesador.ejecutar_periodo(ANIO, MES)
    procesador.aprobar_periodo(ANIO, MES)

    fecha = datetime(2026, 3, 5, 10, 0)
    assert procesador.pagar_periodo(ANIO, MES, fecha_pago=fecha) == 2
    assert _estado_periodo(fabrica) == "PAGADO"
    for liq in procesador.listar_liquidaciones(ANIO, MES):
        assert liq["estado"] == "PAGADA"
        assert liq["fecha_pago"] == fecha

    with pytest.raises(TransicionInvalidaError):
        procesador.pagar_periodo(ANIO, MES)


# ── Correcciones ──────────────────────────────────────────────────────────────

def test_correccion_crea_nueva_version(procesador, crear_guardia, fabrica):
    gid = crear_guardia()
    procesador.ejecutar_periodo(ANIO, MES)
    original = _por_guardia(procesador)[gid]

    with pytest.raises(TransicionInvalidaError):
        procesador.corregir_liquidacion(original["id"], "borrador")

    procesador.aprobar_periodo(ANIO, MES)
    procesador.pagar_periodo(ANIO, MES)

    with get_db_session(fabrica) as db:
        fila = db.query(AsistenciaMensual).filter_by(guardia_id=gid).one()
        fila.horas_extra_1 = 10

    nueva_id = procesador.corregir_liquidacion(original["id"], "Horas extra no informadas")

    historial = procesador.liquidaciones_por_guardia(gid)
    assert [(l["version"], l["estado"], l["vigente"]) for l in historial] == [
        (1, "PAGADA", False), (2, "BORRADOR", True)]
    assert historial[0]["desglose_json"] == original["desglose_json"]
    assert historial[1]["id"] == nueva_id
    assert historial[1]["liquido"] > original["liquido"]

    with pytest.raises(TransicionInvalidaError):
        procesador.corregir_liquidacion(original["id"], "otra vez")

    # Solo la versión vigente aparece en el periodo; pagarla vuelve a liquidar
    assert [l["id"] for l in procesador.listar_liquidaciones(ANIO, MES)] == [nueva_id]
    assert procesador.pagar_periodo(ANIO, MES) == 1


# ── Anticipos en la liquidación ───────────────────────────────────────────────

def test_anticipo_aprobado_se_descuenta_y_se_finaliza(procesador, crear_guardia, abrir_unidad, fuentes):
    gid = crear_guardia(recibe_anticipo=True, monto_anticipo=100000, tope_anticipo=200000)
    anticipos = ProcesadorAnticipos(abrir_unidad, fuentes)
    anticipos.crear_proceso(ANIO, MES)

    # En borrador no se descuenta
    procesador.ejecutar_periodo(ANIO, MES)
    assert _por_guardia(procesador)[gid]["liquido"] == D("816495")

    anticipos.aprobar_proceso(ANIO, MES)
    procesador.ejecutar_periodo(ANIO, MES)
    liq = _por_guardia(procesador)[gid]
    assert liq["desglose"]["anticipo"] == "100000"
    assert liq["liquido"] == D("716495")

    procesador.aprobar_periodo(ANIO, MES)
    procesador.pagar_periodo(ANIO, MES)
    assert anticipos.estado_proceso(ANIO, MES) == "PAGADO"
    assert [i["estado"] for i in anticipos.listar_items(ANIO, MES)] == ["PAGADO"]


# ── Exportaciones ─────────────────────────────────────────────────────────────

def test_exportar_solo_periodos_aprobados(procesador, crear_guardia):
    crear_guardia()
    with pytest.raises(ExportacionNoDisponibleError):
        procesador.exportar_periodo(ANIO, MES, "previred")

    procesador.ejecutar_periodo(ANIO, MES)
    with pytest.raises(ExportacionNoDisponibleError):
        procesador.exportar_periodo(ANIO, MES, "banco")

    procesador.aprobar_periodo(ANIO, MES)
    archivo = procesador.exportar_periodo(ANIO, MES, "previred")
    assert archivo.nombre_archivo == "previred_202602.txt"
    assert archivo.filas == 1


def test_exportar_banco_omite_guardia_sin_cuenta(procesador, crear_guardia):
    crear_guardia(nombres="José Ñuñez")
    sin_banco = crear_guardia(banco=None)
    procesador.ejecutar_periodo(ANIO, MES)
    procesador.aprobar_periodo(ANIO, MES)

    archivo = procesador.exportar_periodo(ANIO, MES, "banco")

    assert archivo.filas == 1
    assert [(o.guardia_id, o.campo) for o in archivo.omisiones] == [(sin_banco, "codigo_banco")]
    lineas = archivo.contenido.decode("latin-1").split("\r\n")
    assert lineas[0] == "RUT;NOMBRE;CODIGO_BANCO;TIPO_CUENTA;NUMERO_CUENTA;MONTO;EMAIL;GLOSA"
    campos = lineas[1].split(";")
    assert campos[1] == "JOSE NUNEZ PEREZ"
    assert campos[2:4] == ["012", "CV"]
    assert campos[5] == "816495"
    assert campos[7] == "REMUNERACION 02-2026"


def test_exportar_usa_version_cerrada_si_hay_correccion_en_borrador(procesador, crear_guardia, fabrica):
    gid = crear_guardia()
    procesador.ejecutar_periodo(ANIO, MES)
    procesador.aprobar_periodo(ANIO, MES)
    procesador.pagar_periodo(ANIO, MES)
    original = _por_guardia(procesador)[gid]

    with get_db_session(fabrica) as db:
        db.query(AsistenciaMensual).filter_by(guardia_id=gid).update({"horas_extra_1": 10})
    procesador.corregir_liquidacion(original["id"], "Horas extra no informadas")
    assert _por_guardia(procesador)[gid]["liquido"] > D("816495")

    archivo = procesador.exportar_periodo(ANIO, MES, "banco")

    assert archivo.filas == 1
    campos = archivo.contenido.decode("latin-1").split("\r\n")[1].split(";")
    assert campos[5] == "816495"
    assert [(o.guardia_id, o.campo) for o in archivo.omisiones] == [(gid, "estado")]

    # Pagada la corrección, el archivo ya la trae
    procesador.pagar_periodo(ANIO, MES)
    archivo = procesador.exportar_periodo(ANIO, MES, "banco")
    assert archivo.omisiones == []
    assert int(archivo.contenido.decode("latin-1").split("\r\n")[1].split(";")[5]) > 816495


def test_previred_usa_la_afiliacion_de_la_liquidacion(procesador, crear_guardia, fabrica):
    gid = crear_guardia()
    procesador.ejecutar_periodo(ANIO, MES)
    procesador.aprobar_periodo(ANIO, MES)
    procesador.pagar_periodo(ANIO, MES)
    antes = procesador.exportar_periodo(ANIO, MES, "previred")
    assert antes.contenido.decode("latin-1").split("\r\n")[1].split(";")[-2] == "34"

    with get_db_session(fabrica) as db:
        db.query(Guardia).filter_by(id=gid).update({"afp": "provida"})

    despues = procesador.exportar_periodo(ANIO, MES, "previred")
    assert despues.contenido == antes.contenido
