"""
账单实体 - 应付、已付与余额
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from domain.common.exceptions import (
    DomainValidationException,
    InvalidAmountException,
    InvalidStateTransitionException,
)
from domain.common.money import ZERO, to_decimal
from domain.common.timeutil import ensure_utc, utc_now
from domain.order.entity import Order


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    UNPAID = "unpaid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


PAYABLE_STATUSES = {InvoiceStatus.UNPAID, InvoiceStatus.OVERDUE}


def generate_invoice_number(now: Optional[datetime] = None) -> str:
    now = now or utc_now()
    return f"INV-{now:%Y%m%d}-{uuid.uuid4().hex[:10].upper()}"


@dataclass
class InvoiceItem:
    id: Optional[int]
    invoice_id: Optional[int]
    description: str
    amount: Decimal
    quantity: int = 1
    service_id: Optional[int] = None
    item_type: str = "service"
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.amount = to_decimal(self.amount)
        self.period_start = ensure_utc(self.period_start)
        self.period_end = ensure_utc(self.period_end)


@dataclass
class InvoiceLine:
    """
    开票请求中的一行（手工账单、续费账单）

    行金额 = unit_price × quantity − discount；taxable 为 False 的行不参与计税。
    """

    description: str
    unit_price: Decimal
    quantity: int = 1
    discount: Decimal = ZERO
    taxable: bool = True
    item_type: str = "service"
    service_id: Optional[int] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.unit_price = to_decimal(self.unit_price)
        self.discount = to_decimal(self.discount)
        if self.quantity < 1:
            raise DomainValidationException("Quantity must be at least 1", field="quantity")
        if self.unit_price < ZERO:
            raise InvalidAmountException(self.unit_price, field="unit_price")
        if self.discount < ZERO or self.discount > self.subtotal:
            raise DomainValidationException(
                "Discount must be between zero and the line subtotal",
                field="discount",
                details={"discount": str(self.discount), "subtotal": str(self.subtotal)},
            )

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def total(self) -> Decimal:
        return self.subtotal - self.discount

    def to_item(self) -> InvoiceItem:
        return InvoiceItem(
            id=None,
            invoice_id=None,
            description=self.description,
            amount=self.total,
            quantity=self.quantity,
            service_id=self.service_id,
            item_type=self.item_type,
            period_start=self.period_start,
            period_end=self.period_end,
        )


@dataclass
class Invoice:
    """
    账单聚合根

    业务规则：
    1. balance = total − amount_paid
    2. balance ≤ 0 时状态变为 paid，balance 固定为 0
    """

    id: Optional[int]
    invoice_number: str
    customer_id: int
    currency: str
    subtotal: Decimal
    discount: Decimal
    tax_amount: Decimal
    total: Decimal
    amount_paid: Decimal = ZERO
    balance: Optional[Decimal] = None
    status: InvoiceStatus = InvoiceStatus.UNPAID
    order_id: Optional[int] = None
    due_date: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    items: List[InvoiceItem] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.status = InvoiceStatus(self.status)
        self.subtotal = to_decimal(self.subtotal)
        self.discount = to_decimal(self.discount)
        self.tax_amount = to_decimal(self.tax_amount)
        self.total = to_decimal(self.total)
        self.amount_paid = to_decimal(self.amount_paid)
        self.balance = self.total - self.amount_paid if self.balance is None else to_decimal(self.balance)
        self.due_date = ensure_utc(self.due_date)
        self.paid_at = ensure_utc(self.paid_at)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    @classmethod
    def from_order(cls, order: Order, *, due_in: timedelta, now: Optional[datetime] = None) -> "Invoice":
        now = now or utc_now()
        items = [
            InvoiceItem(
                id=None,
                invoice_id=None,
                description=f"{item.product_name} ({item.billing_cycle})",
                amount=item.total,
                quantity=item.quantity,
                service_id=item.service_id,
            )
            for item in order.items
        ]
        return cls(
            id=None,
            invoice_number=generate_invoice_number(now),
            customer_id=order.customer_id,
            currency=order.currency,
            subtotal=order.subtotal,
            discount=order.discount,
            tax_amount=order.tax_amount,
            total=order.total,
            order_id=order.id,
            due_date=now + due_in,
            items=items,
            created_at=now,
            updated_at=now,
        )

    @classmethod
    def issue(
        cls,
        *,
        customer_id: int,
        currency: str,
        lines: List[InvoiceLine],
        tax_amount: Decimal,
        due_date: datetime,
        now: Optional[datetime] = None,
    ) -> "Invoice":
        """不经订单直接开票：手工账单与服务续费账单"""
        if not lines:
            raise DomainValidationException("Invoice must have at least one line", field="items")
        now = now or utc_now()
        subtotal = sum((line.subtotal for line in lines), ZERO)
        discount = sum((line.discount for line in lines), ZERO)
        tax_amount = to_decimal(tax_amount)
        return cls(
            id=None,
            invoice_number=generate_invoice_number(now),
            customer_id=customer_id,
            currency=currency.upper(),
            subtotal=subtotal,
            discount=discount,
            tax_amount=tax_amount,
            total=subtotal - discount + tax_amount,
            due_date=due_date,
            items=[line.to_item() for line in lines],
            created_at=now,
            updated_at=now,
        )

    @property
    def is_payable(self) -> bool:
        return self.status in PAYABLE_STATUSES

    def apply_payment(self, amount: Decimal, now: Optional[datetime] = None) -> bool:
        """入账一笔付款，返回本次是否使账单变为已付"""
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise InvalidAmountException(amount)
        if not self.is_payable:
            raise InvalidStateTransitionException("Invoice", self.status.value, InvoiceStatus.PAID.value)
        now = now or utc_now()
        self.amount_paid += amount
        self.balance = self.total - self.amount_paid
        self.updated_at = now
        if self.balance <= ZERO:
            self.balance = ZERO
            self.status = InvoiceStatus.PAID
            self.paid_at = now
            return True
        return False

    def cancel(self, now: Optional[datetime] = None) -> None:
        if self.status in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED, InvoiceStatus.REFUNDED):
            raise InvalidStateTransitionException("Invoice", self.status.value, InvoiceStatus.CANCELLED.value)
        self.status = InvoiceStatus.CANCELLED
        self.updated_at = now or utc_now()

    def mark_refunded(self, now: Optional[datetime] = None) -> None:
        """已付账单的付款全部退回"""
        if self.status != InvoiceStatus.PAID:
            raise InvalidStateTransitionException("Invoice", self.status.value, InvoiceStatus.REFUNDED.value)
        self.status = InvoiceStatus.REFUNDED
        self.updated_at = now or utc_now()

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        now = now or utc_now()
        return self.status == InvoiceStatus.UNPAID and self.due_date is not None and self.due_date < now
