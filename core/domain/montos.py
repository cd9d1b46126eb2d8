"""
Aritmética monetaria en pesos chilenos.

Todo monto se maneja como Decimal. El redondeo a la unidad mínima (1 peso)
se aplica una sola vez por ítem final de la liquidación.
"""
from decimal import Decimal, ROUND_HALF_UP, ROUND_HALF_EVEN

CERO = Decimal("0")
UNO = Decimal("1")

_REGLAS = {
    "HALF_UP": ROUND_HALF_UP,
    "HALF_EVEN": ROUND_HALF_EVEN,
}


def a_decimal(valor) -> Decimal:
    """Convierte int/str/float/Decimal a Decimal sin arrastrar error binario."""
    if valor is None:
        return CERO
    if isinstance(valor, Decimal):
        return valor
    if isinstance(valor, float):
        return Decimal(repr(valor))
    return Decimal(str(valor))


def redondear(monto, regla: str = "HALF_UP") -> Decimal:
    if regla not in _REGLAS:
        raise ValueError(f"Regla de redondeo desconocida: {regla}")
    return a_decimal(monto).quantize(UNO, rounding=_REGLAS[regla])


def acotar(valor: Decimal, minimo: Decimal, maximo: Decimal) -> Decimal:
    return max(minimo, min(valor, maximo))


def formato_clp(monto) -> str:
    """1234567 -> '$1.234.567'"""
    entero = int(redondear(monto))
    signo = "-" if entero < 0 else ""
    return f"{signo}${abs(entero):,}".replace(",", ".")
