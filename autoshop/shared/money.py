"""Monetary arithmetic helpers"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CENT = Decimal("0.01")

Number = Union[Decimal, float, int, str, None]


def to_decimal(value: Number) -> Decimal:
    """Convert a stored or user-supplied number to Decimal without float noise"""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_money(value: Number) -> Decimal:
    """Round to cents, half-up"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
