from decimal import Decimal

from core.domain.montos import redondear


def calcular_pension(imponible: Decimal, afp: str, snapshot) -> dict:
    """
    Cotización obligatoria AFP del trabajador (10% + comisión de la AFP).
    La base se topa en el máximo imponible (89,9 UF).
    Retorna un diccionario con el desglose exacto.
    """
    base = min(imponible, snapshot.tope_imponible_afp)
    comision = snapshot.tasa_comision_afp(afp)
    tasa = snapshot.tasa_base_afp + comision
    return {
        "afp": afp.lower(),
        "base": base,
        "tasa": tasa,
        "monto": redondear(base * tasa, snapshot.regla_redondeo),
        "desglose": {
            "aporte": redondear(base * snapshot.tasa_base_afp, snapshot.regla_redondeo),
            "comision_tasa": comision,
        },
    }


def calcular_salud(imponible: Decimal, sistema_salud: str, snapshot, porcentaje_isapre: Decimal = Decimal("0")) -> dict:
    """ Fonasa: 7% fijo. Isapre: % del plan, nunca bajo el 7% legal. Ambos con tope 89,9 UF. """
    base = min(imponible, snapshot.tope_imponible_salud)
    sistema = (sistema_salud or "FONASA").upper()
    if sistema == "ISAPRE":
        tasa = max(porcentaje_isapre, snapshot.tasa_fonasa)
    else:
        tasa = snapshot.tasa_fonasa
    return {
        "sistema": sistema,
        "base": base,
        "tasa": tasa,
        "monto": redondear(base * tasa, snapshot.regla_redondeo),
    }


def calcular_cesantia_trabajador(imponible: Decimal, tipo_contrato: str, snapshot) -> dict:
    """ Seguro de cesantía (AFC), parte trabajador. Plazo fijo no descuenta al trabajador. """
    base = min(imponible, snapshot.tope_imponible_cesantia)
    tasa = snapshot.tasas_cesantia(tipo_contrato).trabajador
    return {
        "tipo_contrato": tipo_contrato.upper(),
        "base": base,
        "tasa": tasa,
        "monto": redondear(base * tasa, snapshot.regla_redondeo),
    }
