from datetime import date
from decimal import Decimal

from core.domain.montos import CERO

CODIGOS_TRABAJADO = ("AS",)


def contar_horas_feriado(detalle: list, feriados, horas_turno: Decimal = Decimal("12")) -> Decimal:
    """Horas trabajadas en días feriado según el detalle diario (turnos de 12 h por defecto)."""
    fechas_feriado = {f if isinstance(f, date) else date.fromisoformat(str(f)) for f in feriados}
    if not fechas_feriado:
        return CERO
    dias = sum(
        1 for d in detalle
        if d.fecha in fechas_feriado and d.codigo.strip().upper() in CODIGOS_TRABAJADO
    )
    return Decimal(dias) * horas_turno
