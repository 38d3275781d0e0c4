"""计费周期与账期推进"""
from __future__ import annotations

import calendar
from datetime import datetime
from enum import Enum
from typing import Optional


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUALLY = "semi-annually"
    ANNUALLY = "annually"
    BIENNIALLY = "biennially"
    TRIENNIALLY = "triennially"

    @property
    def months(self) -> int:
        return CYCLE_MONTHS[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["BillingCycle"]:
        """解析周期字符串，未知周期返回 None。"""
        if value is None:
            return None
        key = value.strip().lower()
        if not key:
            return None
        key = _ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return None


CYCLE_MONTHS = {
    BillingCycle.MONTHLY: 1,
    BillingCycle.QUARTERLY: 3,
    BillingCycle.SEMI_ANNUALLY: 6,
    BillingCycle.ANNUALLY: 12,
    BillingCycle.BIENNIALLY: 24,
    BillingCycle.TRIENNIALLY: 36,
}

_ALIASES = {
    "semiannually": BillingCycle.SEMI_ANNUALLY.value,
    "semi_annually": BillingCycle.SEMI_ANNUALLY.value,
    "yearly": BillingCycle.ANNUALLY.value,
}


def add_months(moment: datetime, months: int) -> datetime:
    """按月推进；目标月份天数不足时落在月末（1月31日 + 1个月 = 2月末）。"""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return moment.replace(year=year, month=month, day=min(moment.day, last_day))


def add_billing_period(moment: datetime, billing_cycle: Optional[str]) -> datetime:
    """推进一个计费周期，未识别的周期按月计算（调用方负责记录告警）。"""
    cycle = BillingCycle.parse(billing_cycle)
    months = cycle.months if cycle is not None else 1
    return add_months(moment, months)


def is_known_cycle(billing_cycle: Optional[str]) -> bool:
    return BillingCycle.parse(billing_cycle) is not None
