"""金额工具：统一使用 Decimal 做定点运算。"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

Number = Union[Decimal, int, str, float]

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_decimal(value: Number | None) -> Decimal:
    """转换为 Decimal；float 先经 str 以避免二进制误差。"""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_money(amount: Number) -> Decimal:
    """四舍五入到分"""
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Number, rate: Number) -> Decimal:
    return to_decimal(amount) * to_decimal(rate) / HUNDRED


def money_sum(values: Iterable[Number]) -> Decimal:
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return total


def clamp(amount: Decimal, lower: Decimal, upper: Decimal) -> Decimal:
    return max(lower, min(amount, upper))
