from decimal import Decimal

from core.domain.montos import CERO, redondear


def calcular_base_tributable(
    imponible: Decimal,
    pension: Decimal,
    salud: Decimal,
    cesantia: Decimal,
    snapshot,
    apv: Decimal = CERO,
    cargas_familiares: int = 0,
    asignacion_maternal: bool = False,
    asignacion_invalidez: bool = False,
    tributable_no_imponible: Decimal = CERO,
) -> Decimal:
    """
    Renta tributable del mes para el impuesto único de segunda categoría.

    Se descuentan las cotizaciones obligatorias, el APV régimen B (con tope
    mensual en UF) y las rebajas por cargas que defina la versión de
    parámetros. Nunca es negativa.
    """
    base = imponible - pension - salud
    if snapshot.impuesto_descuenta_cesantia:
        base -= cesantia
    base -= min(apv, snapshot.tope_apv_mensual_uf * snapshot.valor_uf)

    rebajas = snapshot.rebajas_tributarias
    rebaja_utm = rebajas.por_carga_utm * cargas_familiares
    if asignacion_maternal:
        rebaja_utm += rebajas.maternal_utm
    if asignacion_invalidez:
        rebaja_utm += rebajas.invalidez_utm
    base -= rebaja_utm * snapshot.valor_utm

    base += tributable_no_imponible
    return max(CERO, base)


def calcular_impuesto_unico(base_tributable: Decimal, snapshot) -> dict:
    """
    Aplica la tabla progresiva por tramos marginales: el exceso dentro de
    cada tramo se grava con su propia tasa y los resultados se suman.
    """
    impuesto = CERO
    tramos = []
    for tramo in snapshot.tramos_impuesto:
        desde = tramo.desde_utm * snapshot.valor_utm
        if base_tributable <= desde:
            break
        hasta = None if tramo.hasta_utm is None else tramo.hasta_utm * snapshot.valor_utm
        tope = base_tributable if hasta is None else min(base_tributable, hasta)
        monto_tramo = tope - desde
        impuesto_tramo = monto_tramo * tramo.tasa
        impuesto += impuesto_tramo
        if tramo.tasa > 0:
            tramos.append({"desde": desde, "hasta": hasta, "tasa": tramo.tasa, "impuesto": impuesto_tramo})

    return {
        "base": base_tributable,
        "monto": redondear(impuesto, snapshot.regla_redondeo),
        "tramos": tramos,
    }
