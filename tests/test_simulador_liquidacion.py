import random
from dataclasses import replace
from decimal import Decimal

import pytest

from core.domain.entities import BonoAplicable
from core.use_cases.simulador_liquidacion import ALERTA_NETO_NEGATIVO, estimar_costo_empleador, simular_liquidacion

D = Decimal


# ── Caso de referencia ────────────────────────────────────────────────────────

def test_caso_referencia_800000(nueva_entrada):
    r = simular_liquidacion(nueva_entrada())

    assert r.sueldo_base == D("800000")
    assert r.gratificacion == D("197917")
    assert r.total_imponible == D("997917")
    assert r.afp == D("105580")
    assert r.salud == D("69854")
    assert r.seguro_cesantia == D("5988")
    assert r.impuesto_unico == D("0")
    assert r.total_descuentos == D("181422")
    assert r.liquido == D("816495")
    assert r.sis == D("15368")
    assert r.cesantia_empleador_cic == D("15967")
    assert r.cesantia_empleador_fcs == D("7983")
    assert r.mutual == D("9281")
    assert r.costo_empleador == D("1046516")
    assert r.alertas == []
    assert r.version_parametros_id == "CL-2026-02"


def test_sueldo_1500000_paga_impuesto_primer_tramo(nueva_entrada):
    r = simular_liquidacion(nueva_entrada("1500000"))

    assert r.total_imponible == D("1697917")
    assert r.afp == D("179640")
    assert r.salud == D("118854")
    assert r.seguro_cesantia == D("10188")
    assert r.base_tributable == D("1389235")
    assert r.impuesto_unico == D("17979")
    assert r.liquido == D("1371256")


def test_topes_imponibles_sueldo_alto(nueva_entrada):
    r = simular_liquidacion(nueva_entrada("5000000"))

    assert r.total_imponible == D("5197917")
    assert r.afp == D("377637")
    assert r.salud == D("249854")
    # Tope AFC (135,1 UF) sobre el imponible: no se alcanza
    assert r.seguro_cesantia == D("31188")


def test_isapre_9_por_ciento(nueva_entrada):
    r = simular_liquidacion(nueva_entrada(sistema_salud="ISAPRE", porcentaje_isapre=D("0.09")))
    assert r.salud == D("89813")


def test_isapre_bajo_el_minimo_legal_cotiza_7(nueva_entrada):
    r = simular_liquidacion(nueva_entrada(sistema_salud="ISAPRE", porcentaje_isapre=D("0.05")))
    assert r.salud == D("69854")


def test_plazo_fijo_no_descuenta_cesantia_al_trabajador(nueva_entrada):
    r = simular_liquidacion(nueva_entrada(tipo_contrato="PLAZO_FIJO"))

    assert r.seguro_cesantia == D("0")
    assert r.cesantia_empleador_cic == D("27942")
    assert r.cesantia_empleador_fcs == D("1996")


def test_afp_desconocida_falla(nueva_entrada):
    with pytest.raises(KeyError):
        simular_liquidacion(nueva_entrada(afp="inexistente"))


@pytest.mark.parametrize("campo, valor", [("sistema_salud", "CAPREDENA"), ("tipo_contrato", "HONORARIOS")])
def test_afiliacion_desconocida_rechazada(nueva_entrada, campo, valor):
    with pytest.raises(ValueError):
        nueva_entrada(**{campo: valor})


def test_tipo_gratificacion_desconocido_rechazado(nueva_entrada, nueva_estructura):
    with pytest.raises(ValueError):
        nueva_entrada(estructura=nueva_estructura("800000", tipo_gratificacion="ANUAL"))


def test_afiliacion_queda_en_el_desglose(nueva_entrada):
    d = simular_liquidacion(nueva_entrada(afp=" Habitat ", sistema_salud="isapre", nombre_isapre="Colmena",
                                          tipo_contrato="plazo_fijo")).a_dict()
    assert d["afiliacion"] == {"afp": "habitat", "sistema_salud": "ISAPRE",
                               "nombre_isapre": "Colmena", "tipo_contrato": "PLAZO_FIJO"}

    d = simular_liquidacion(nueva_entrada(nombre_isapre="Colmena")).a_dict()
    assert d["afiliacion"]["sistema_salud"] == "FONASA"
    assert d["afiliacion"]["nombre_isapre"] is None


# ── Gratificación ─────────────────────────────────────────────────────────────

def test_gratificacion_bajo_el_tope(nueva_entrada):
    r = simular_liquidacion(nueva_entrada("500000"))
    assert r.gratificacion == D("125000")


def test_gratificacion_fija_y_ninguna(nueva_entrada, nueva_estructura):
    fija = nueva_estructura("800000", tipo_gratificacion="FIJA", monto_gratificacion=D("50000"))
    assert simular_liquidacion(nueva_entrada(estructura=fija)).gratificacion == D("50000")

    ninguna = nueva_estructura("800000", tipo_gratificacion="NINGUNA")
    r = simular_liquidacion(nueva_entrada(estructura=ninguna))
    assert r.gratificacion == D("0")
    assert r.total_imponible == D("800000")


# ── Haberes variables ─────────────────────────────────────────────────────────

def test_horas_extra_y_feriado(nueva_entrada, nueva_asistencia, nueva_estructura):
    asistencia = nueva_asistencia(horas_extra_1=D("10"), horas_extra_2=D("4"), horas_feriado=D("12"))
    r = simular_liquidacion(nueva_entrada(estructura=nueva_estructura("720000", tipo_gratificacion="NINGUNA"),
                                          asistencia=asistencia))
    # valor hora = 720.000 / 30 / 8 = 3.000
    assert r.valor_hora == D("3000")
    assert r.horas_extra_1 == D("45000")
    assert r.horas_extra_2 == D("24000")
    assert r.recargo_feriado == D("72000")
    assert r.total_imponible == D("861000")


def test_colacion_y_movilizacion_proporcionales(nueva_entrada, nueva_asistencia, nueva_estructura):
    estructura = nueva_estructura("800000", colacion=D("60000"), movilizacion=D("30000"))
    r = simular_liquidacion(nueva_entrada(estructura=estructura, asistencia=nueva_asistencia(dias_trabajados=15)))
    assert r.colacion == D("30000")
    assert r.movilizacion == D("15000")
    assert r.total_no_imponible == D("45000")


def test_asignacion_familiar_por_tramo(nueva_entrada):
    # 997.917 cae en el tercer tramo
    assert simular_liquidacion(nueva_entrada(cargas_familiares=1)).asignacion_familiar == D("4267")
    # 625.000 cae en el primer tramo
    r = simular_liquidacion(nueva_entrada("500000", cargas_familiares=2))
    assert r.asignacion_familiar == D("44014")


def test_tramo_asignacion_con_renta_del_mes_completo(nueva_entrada, nueva_asistencia):
    # 15 días de 800.000 dejan la imponible del mes bajo el primer tramo,
    # pero el tramo se fija con la renta del mes completo
    r = simular_liquidacion(nueva_entrada(cargas_familiares=1, asistencia=nueva_asistencia(dias_trabajados=15)))
    assert r.total_imponible < D("631976")
    assert r.renta_referencia_asignacion == D("997917")
    assert r.asignacion_familiar == D("4267")


def test_tramo_asignacion_con_renta_informada(nueva_entrada):
    r = simular_liquidacion(nueva_entrada("500000", cargas_familiares=1, renta_referencia_asignacion="1000000"))
    assert r.renta_referencia_asignacion == D("1000000")
    assert r.asignacion_familiar == D("4267")

    with pytest.raises(ValueError):
        nueva_entrada(renta_referencia_asignacion="-1")


def test_bonos_imponibles_y_no_imponibles(nueva_entrada, nueva_estructura):
    bonos = [
        BonoAplicable("TURNO", "Bono turno", "FIJO", imponible=True, monto=D("40000")),
        BonoAplicable("RESP", "Bono responsabilidad", "PORCENTUAL", imponible=True, porcentaje=D("5")),
        BonoAplicable("ASIST", "Bono asistencia", "CONDICIONAL", imponible=False, tributable=False,
                      monto=D("20000"), condicion_tipo="SIN_AUSENCIAS"),
    ]
    estructura = nueva_estructura("800000", tipo_gratificacion="NINGUNA", bonos=bonos)
    r = simular_liquidacion(nueva_entrada(estructura=estructura))

    assert r.bonos_imponibles == {"TURNO": D("40000"), "RESP": D("40000")}
    assert r.bonos_no_imponibles == {"ASIST": D("20000")}
    assert r.total_imponible == D("880000")


def test_bono_condicional_no_cumplido(nueva_entrada, nueva_estructura, nueva_asistencia):
    bonos = [BonoAplicable("ASIST", "Bono asistencia", "CONDICIONAL", monto=D("20000"),
                           condicion_tipo="SIN_AUSENCIAS")]
    estructura = nueva_estructura("800000", bonos=bonos)
    r = simular_liquidacion(nueva_entrada(estructura=estructura,
                                          asistencia=nueva_asistencia(dias_trabajados=29, dias_ausente=1)))
    assert r.bonos_imponibles == {}


# ── Líquido ───────────────────────────────────────────────────────────────────

def test_descuentos_voluntarios_no_dejan_liquido_negativo(nueva_entrada):
    r = simular_liquidacion(nueva_entrada(anticipo=D("2000000")))

    assert r.liquido == D("0")
    assert r.anticipo == D("816495")
    assert r.descuentos_no_aplicados == D("1183505")
    assert ALERTA_NETO_NEGATIVO in r.alertas
    assert r.total_descuentos + r.liquido == r.total_haberes


def test_descuentos_adicionales_y_anticipo(nueva_entrada):
    r = simular_liquidacion(nueva_entrada(anticipo=D("200000"), descuentos_adicionales={"uniforme": D("15000")}))
    assert r.otros_descuentos == {"uniforme": D("15000")}
    assert r.liquido == D("601495")


def test_apv_reduce_base_tributable(nueva_entrada):
    sin = simular_liquidacion(nueva_entrada("1500000"))
    con = simular_liquidacion(nueva_entrada("1500000", apv=D("100000")))
    assert con.base_tributable == sin.base_tributable - D("100000")
    assert con.impuesto_unico < sin.impuesto_unico


def test_monto_negativo_rechazado(nueva_entrada):
    with pytest.raises(ValueError):
        nueva_entrada(anticipo=D("-1"))


# ── Propiedades ───────────────────────────────────────────────────────────────

def test_identidad_haberes_descuentos_liquido_aleatoria(nueva_entrada, nueva_asistencia):
    rnd = random.Random(20260201)
    for _ in range(100):
        base = rnd.randint(400000, 4000000)
        asistencia = nueva_asistencia(
            dias_trabajados=rnd.randint(0, 30),
            horas_extra_1=D(rnd.randint(0, 40)),
            horas_atraso=D(rnd.randint(0, 10)),
        )
        r = simular_liquidacion(nueva_entrada(
            str(base), asistencia=asistencia,
            afp=rnd.choice(["uno", "modelo", "habitat", "provida"]),
            anticipo=D(rnd.randint(0, 600000)),
            cargas_familiares=rnd.randint(0, 3),
        ))
        assert r.total_descuentos + r.liquido == r.total_haberes
        assert r.liquido >= 0
        for valor in (r.total_imponible, r.afp, r.salud, r.impuesto_unico, r.liquido, r.costo_empleador):
            assert valor == valor.to_integral_value()


def test_liquido_no_disminuye_con_mas_sueldo(nueva_entrada):
    anterior = None
    for base in range(500000, 6000001, 250000):
        r = simular_liquidacion(nueva_entrada(str(base)))
        if anterior is not None:
            assert r.liquido >= anterior
        anterior = r.liquido


def test_mas_dias_trabajados_no_disminuye_liquido(nueva_entrada, nueva_asistencia):
    liquidos = [
        simular_liquidacion(nueva_entrada(asistencia=nueva_asistencia(dias_trabajados=dias))).liquido
        for dias in range(0, 31)
    ]
    assert liquidos == sorted(liquidos)


@pytest.mark.parametrize("base, cargas", [("510000", 3), ("650000", 2)])
def test_mas_dias_no_disminuye_liquido_con_cargas(nueva_entrada, nueva_asistencia, base, cargas):
    liquidos = [
        simular_liquidacion(nueva_entrada(base, cargas_familiares=cargas,
                                          asistencia=nueva_asistencia(dias_trabajados=dias))).liquido
        for dias in range(0, 31)
    ]
    assert liquidos == sorted(liquidos)


def test_mas_horas_extra_no_disminuye_imponible(nueva_entrada, nueva_asistencia):
    imponibles = [
        simular_liquidacion(nueva_entrada("1500000", asistencia=nueva_asistencia(horas_extra_1=D(h)))).total_imponible
        for h in range(0, 60, 5)
    ]
    assert imponibles == sorted(imponibles)


def test_huella_estable_y_sensible(nueva_entrada):
    a = simular_liquidacion(nueva_entrada())
    b = simular_liquidacion(nueva_entrada())
    assert a.a_json() == b.a_json()
    assert a.huella() == b.huella()

    otra = simular_liquidacion(nueva_entrada("800001"))
    assert otra.huella() != a.huella()


def test_misma_entrada_otro_snapshot_cambia_resultado(nueva_entrada, snapshot):
    nuevo = replace(snapshot, version_id="CL-2026-03", valor_uf=D("40000"))
    r = simular_liquidacion(nueva_entrada("5000000", snapshot=nuevo))
    assert r.version_parametros_id == "CL-2026-03"
    assert r.afp != simular_liquidacion(nueva_entrada("5000000")).afp


# ── Costeo ────────────────────────────────────────────────────────────────────

def test_estimar_costo_empleador_incluye_provisiones(snapshot):
    est = estimar_costo_empleador(800000, snapshot)
    assert est["total_imponible"] == D("997917")
    assert est["provisiones"] == D("83126") + D("41573")
    assert est["costo_empleador"] == D("1046516") + est["provisiones"]
