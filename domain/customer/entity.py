"""
客户实体 - 账单地址与预付余额
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from domain.common.exceptions import InsufficientBalanceException, InvalidAmountException
from domain.common.money import ZERO, to_decimal


@dataclass
class Customer:
    """
    客户（账务视角）

    业务规则：
    1. 余额不能为负
    2. 余额变动必须伴随一条 CreditAdjustment（由应用层在同一事务内写入）
    """

    id: Optional[int]
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    country: Optional[str] = None
    state: Optional[str] = None
    currency: str = "USD"
    credit: Decimal = ZERO
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.credit = to_decimal(self.credit)

    def add_credit(self, amount: Decimal) -> tuple[Decimal, Decimal]:
        """增加余额，返回 (before, after)"""
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise InvalidAmountException(amount)
        before = self.credit
        self.credit = before + amount
        return before, self.credit

    def deduct_credit(self, amount: Decimal) -> tuple[Decimal, Decimal]:
        """扣减余额，返回 (before, after)"""
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise InvalidAmountException(amount)
        if self.credit < amount:
            raise InsufficientBalanceException(self.credit, amount)
        before = self.credit
        self.credit = before - amount
        return before, self.credit
