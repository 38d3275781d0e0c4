"""
产品目录实体 - 产品、周期定价与可配置选项
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from domain.catalog.billing_cycle import BillingCycle
from domain.common.money import ZERO, to_decimal

# 定价表中 -1 表示该周期未开放
DISABLED_PRICE = Decimal("-1")


@dataclass
class Product:
    id: Optional[int]
    name: str
    product_type: str = "hosting"
    active: bool = True
    description: Optional[str] = None


@dataclass
class CyclePrices:
    """各周期价格，负数表示该周期不可用"""

    monthly: Decimal = DISABLED_PRICE
    quarterly: Decimal = DISABLED_PRICE
    semi_annually: Decimal = DISABLED_PRICE
    annually: Decimal = DISABLED_PRICE
    biennially: Decimal = DISABLED_PRICE
    triennially: Decimal = DISABLED_PRICE

    def price_for(self, cycle: BillingCycle) -> Decimal:
        return to_decimal(getattr(self, cycle.name.lower()))

    def is_enabled(self, cycle: BillingCycle) -> bool:
        return self.price_for(cycle) >= ZERO


@dataclass
class ProductPricing:
    """产品在某币种下的定价行"""

    id: Optional[int]
    product_id: int
    currency: str
    setup_fee: Decimal = ZERO
    prices: CyclePrices = field(default_factory=CyclePrices)

    def recurring_fee(self, cycle: BillingCycle) -> Decimal:
        return self.prices.price_for(cycle)

    def is_enabled(self, cycle: BillingCycle) -> bool:
        return self.prices.is_enabled(cycle)


@dataclass
class ConfigSubOption:
    """可配置选项的子选项，各自带安装费与周期费"""

    id: Optional[int]
    option_id: int
    name: str
    setup_fee: Decimal = ZERO
    prices: CyclePrices = field(
        default_factory=lambda: CyclePrices(ZERO, ZERO, ZERO, ZERO, ZERO, ZERO)
    )

    def recurring_fee(self, cycle: BillingCycle) -> Decimal:
        fee = self.prices.price_for(cycle)
        return fee if fee > ZERO else ZERO


@dataclass
class ConfigOption:
    id: Optional[int]
    product_id: int
    name: str
    sub_options: List[ConfigSubOption] = field(default_factory=list)

    def find_sub_option(self, sub_option_id: int) -> Optional[ConfigSubOption]:
        for sub in self.sub_options:
            if sub.id == sub_option_id:
                return sub
        return None


def price_config_options(
    options: List[ConfigOption],
    selected: Dict[int, int],
    cycle: BillingCycle,
) -> tuple[Decimal, Decimal]:
    """计算所选子选项的附加费用，返回 (setup_fee, recurring_fee)。

    未知的选项或子选项直接忽略。
    """
    by_id = {opt.id: opt for opt in options}
    setup = ZERO
    recurring = ZERO
    for option_id, sub_option_id in selected.items():
        option = by_id.get(int(option_id))
        if option is None:
            continue
        sub = option.find_sub_option(int(sub_option_id))
        if sub is None:
            continue
        setup += to_decimal(sub.setup_fee)
        recurring += sub.recurring_fee(cycle)
    return setup, recurring
