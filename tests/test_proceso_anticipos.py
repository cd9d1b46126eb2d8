from decimal import Decimal

import pytest

from core.domain.exceptions import AnticipoExcedeTopeError, ProcesoAnticipoDuplicadoError, TransicionInvalidaError
from core.use_cases.proceso_anticipos import ProcesadorAnticipos

ANIO, MES = 2026, 2


@pytest.fixture
def anticipos(abrir_unidad, fuentes):
    return ProcesadorAnticipos(abrir_unidad, fuentes)


def test_crear_proceso_solo_guardias_habilitados(anticipos, crear_guardia):
    con_anticipo = crear_guardia(recibe_anticipo=True, monto_anticipo=150000, tope_anticipo=200000)
    crear_guardia()
    crear_guardia(recibe_anticipo=True, monto_anticipo=0)
    excedido = crear_guardia(recibe_anticipo=True, monto_anticipo=300000, tope_anticipo=200000)

    r = anticipos.crear_proceso(ANIO, MES)

    assert r["items"] == 1
    assert [(o["guardia_id"], o["codigo"]) for o in r["omisiones"]] == [(excedido, "EXCEDE_TOPE")]
    items = anticipos.listar_items(ANIO, MES)
    assert [(i["guardia_id"], i["monto"], i["estado"]) for i in items] == [
        (con_anticipo, Decimal("150000"), "BORRADOR")]
    assert anticipos.estado_proceso(ANIO, MES) == "BORRADOR"


def test_un_proceso_por_mes(anticipos, crear_guardia):
    crear_guardia(recibe_anticipo=True, monto_anticipo=100000)
    anticipos.crear_proceso(ANIO, MES)
    with pytest.raises(ProcesoAnticipoDuplicadoError):
        anticipos.crear_proceso(ANIO, MES)


def test_ajustar_item_respeta_tope(anticipos, crear_guardia):
    crear_guardia(recibe_anticipo=True, monto_anticipo=100000, tope_anticipo=200000)
    anticipos.crear_proceso(ANIO, MES)
    item_id = anticipos.listar_items(ANIO, MES)[0]["id"]

    anticipos.ajustar_item(item_id, 180000)
    assert anticipos.listar_items(ANIO, MES)[0]["monto"] == Decimal("180000")

    with pytest.raises(AnticipoExcedeTopeError):
        anticipos.ajustar_item(item_id, 250000)
    with pytest.raises(ValueError):
        anticipos.ajustar_item(item_id, -1)
    with pytest.raises(TransicionInvalidaError):
        anticipos.ajustar_item(9999, 1000)


def test_sin_tope_configurado_no_limita(anticipos, crear_guardia):
    crear_guardia(recibe_anticipo=True, monto_anticipo=100000, tope_anticipo=0)
    anticipos.crear_proceso(ANIO, MES)
    item_id = anticipos.listar_items(ANIO, MES)[0]["id"]
    anticipos.ajustar_item(item_id, 900000)
    assert anticipos.listar_items(ANIO, MES)[0]["monto"] == Decimal("900000")


def test_ciclo_de_vida(anticipos, crear_guardia):
    gid = crear_guardia(recibe_anticipo=True, monto_anticipo=100000)
    anticipos.crear_proceso(ANIO, MES)

    assert anticipos.montos_anticipo_periodo(ANIO, MES) == {}
    with pytest.raises(TransicionInvalidaError):
        anticipos.pagar_proceso(ANIO, MES)

    anticipos.aprobar_proceso(ANIO, MES)
    assert anticipos.montos_anticipo_periodo(ANIO, MES) == {gid: Decimal("100000")}
    item_id = anticipos.listar_items(ANIO, MES)[0]["id"]
    with pytest.raises(TransicionInvalidaError):
        anticipos.ajustar_item(item_id, 50000)

    anticipos.pagar_proceso(ANIO, MES)
    assert anticipos.estado_proceso(ANIO, MES) == "PAGADO"
    assert anticipos.listar_items(ANIO, MES)[0]["estado"] == "PAGADO"
    assert anticipos.montos_anticipo_periodo(ANIO, MES) == {gid: Decimal("100000")}


def test_transicion_sin_proceso(anticipos):
    with pytest.raises(TransicionInvalidaError):
        anticipos.aprobar_proceso(ANIO, MES)
    assert anticipos.estado_proceso(ANIO, MES) is None
    assert anticipos.listar_items(ANIO, MES) == []
