"""
===============================================================================
TARJETA CRC — domain/money.py
===============================================================================

Responsabilidades:
    - Normalizar montos a Decimal con 2 decimales (ROUND_HALF_UP).
    - Comparar saldos con tolerancia (epsilon).

Colaboradores:
    - domain.sales / domain.purchasing / domain.finance (cálculo de totales)
===============================================================================
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_money(value: Decimal | int | float | str | None) -> Decimal:
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Decimal]) -> Decimal:
    return to_money(sum(values, ZERO))


def is_balanced(left: Decimal, right: Decimal, epsilon: Decimal = CENT) -> bool:
    return abs(left - right) <= epsilon


def average_rate(rates: Iterable[Decimal]) -> Decimal:
    """Promedio simple de tasas (0 si no hay)."""
    values = list(rates)
    if not values:
        return Decimal("0")
    return sum(values, Decimal("0")) / len(values)


def format_money(value: Decimal | int | float | str | None) -> str:
    """Formato "$1,234.50" para mensajes de notificación."""
    return f"${to_money(value):,.2f}"
