"""税率规则实体"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from domain.common.money import to_decimal


@dataclass
class TaxRule:
    id: Optional[int]
    name: str
    country: str
    rate: Decimal
    state: str = ""
    tax_type: str = "vat"
    is_inclusive: bool = False
    priority: int = 0
    active: bool = True

    def __post_init__(self) -> None:
        self.rate = to_decimal(self.rate)
        self.country = (self.country or "").strip().upper()
        self.state = (self.state or "").strip()

    def matches(self, country: str, state: str) -> bool:
        if not self.active or self.country != country:
            return False
        return not self.state or self.state == state
