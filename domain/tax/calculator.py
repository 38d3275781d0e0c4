"""
税费计算 - 领域服务

多条匹配规则的税率相加；只要有一条规则为含税价，则按含税价反推税额。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Sequence

from domain.common.money import HUNDRED, ZERO, quantize_money, to_decimal
from domain.tax.entity import TaxRule


@dataclass
class TaxBreakdown:
    amount: Decimal
    rate: Decimal = ZERO
    tax: Decimal = ZERO
    inclusive: bool = False
    rules: List[TaxRule] = field(default_factory=list)


def compute_tax(amount: Decimal, rules: Sequence[TaxRule]) -> TaxBreakdown:
    """按已排序的匹配规则计算税额"""
    amount = to_decimal(amount)
    if amount <= ZERO or not rules:
        return TaxBreakdown(amount=amount)

    total_rate = sum((to_decimal(r.rate) for r in rules), ZERO)
    inclusive = any(r.is_inclusive for r in rules)
    if total_rate <= ZERO:
        return TaxBreakdown(amount=amount, inclusive=inclusive, rules=list(rules))

    if inclusive:
        tax = amount - amount / (1 + total_rate / HUNDRED)
    else:
        tax = amount * total_rate / HUNDRED

    return TaxBreakdown(
        amount=amount,
        rate=total_rate,
        tax=quantize_money(tax),
        inclusive=inclusive,
        rules=list(rules),
    )


def normalize_region(country: str | None, state: str | None) -> tuple[str, str]:
    return (country or "").strip().upper(), (state or "").strip()
