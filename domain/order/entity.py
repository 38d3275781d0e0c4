"""
订单领域实体 - 订单快照、订单条目与托管服务
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from domain.cart.entity import CartItem
from domain.catalog.billing_cycle import add_billing_period
from domain.common.exceptions import InvalidStateTransitionException, StateConflictException
from domain.common.money import ZERO, to_decimal
from domain.common.timeutil import ensure_utc, utc_now


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"


class ServiceStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"


def generate_order_number(now: Optional[datetime] = None) -> str:
    """ORD-日期-随机串；随机部分来自 uuid4，不依赖时钟精度"""
    now = now or utc_now()
    return f"ORD-{now:%Y%m%d}-{uuid.uuid4().hex[:12].upper()}"


@dataclass
class OrderItem:
    """订单条目：创建后只允许回填 service_id"""

    id: Optional[int]
    order_id: Optional[int]
    product_id: int
    product_name: str
    billing_cycle: str
    quantity: int
    setup_fee: Decimal
    recurring_fee: Decimal
    discount: Decimal
    total: Decimal
    domain: Optional[str] = None
    hostname: Optional[str] = None
    config_options: Dict[int, int] = field(default_factory=dict)
    service_id: Optional[int] = None

    def __post_init__(self) -> None:
        self.setup_fee = to_decimal(self.setup_fee)
        self.recurring_fee = to_decimal(self.recurring_fee)
        self.discount = to_decimal(self.discount)
        self.total = to_decimal(self.total)
        self.config_options = {int(k): int(v) for k, v in (self.config_options or {}).items()}

    @classmethod
    def from_cart_item(cls, item: CartItem) -> "OrderItem":
        """按值复制购物车条目，不共享任何可变结构"""
        return cls(
            id=None,
            order_id=None,
            product_id=item.product_id,
            product_name=item.product_name,
            billing_cycle=item.billing_cycle,
            quantity=item.quantity,
            setup_fee=item.setup_fee,
            recurring_fee=item.recurring_fee,
            discount=item.discount,
            total=item.total,
            domain=item.domain,
            hostname=item.hostname,
            config_options=dict(item.config_options),
        )

    @property
    def subtotal(self) -> Decimal:
        return (self.setup_fee + self.recurring_fee) * self.quantity

    def attach_service(self, service_id: int) -> None:
        if self.service_id is not None:
            raise StateConflictException(
                "Order item already linked to a service",
                details={"order_item_id": self.id, "service_id": self.service_id},
            )
        self.service_id = service_id


@dataclass
class Order:
    """
    订单聚合根 - 结账时由购物车生成的不可变快照

    状态机：pending → active | pending → cancelled，两个目标状态均为终态。
    """

    id: Optional[int]
    order_number: str
    customer_id: int
    currency: str
    subtotal: Decimal
    discount: Decimal
    tax_amount: Decimal
    total: Decimal
    status: OrderStatus = OrderStatus.PENDING
    coupon_id: Optional[int] = None
    ip_address: Optional[str] = None
    notes: Optional[str] = None
    admin_notes: Optional[str] = None
    items: List[OrderItem] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.status = OrderStatus(self.status)
        self.subtotal = to_decimal(self.subtotal)
        self.discount = to_decimal(self.discount)
        self.tax_amount = to_decimal(self.tax_amount)
        self.total = to_decimal(self.total)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)
        self.activated_at = ensure_utc(self.activated_at)
        self.cancelled_at = ensure_utc(self.cancelled_at)

    @classmethod
    def place(
        cls,
        *,
        customer_id: int,
        currency: str,
        items: List[OrderItem],
        tax_amount: Decimal,
        coupon_id: Optional[int] = None,
        ip_address: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "Order":
        now = now or utc_now()
        subtotal = sum((i.subtotal for i in items), ZERO)
        discount = sum((i.discount for i in items), ZERO)
        tax_amount = to_decimal(tax_amount)
        return cls(
            id=None,
            order_number=generate_order_number(now),
            customer_id=customer_id,
            currency=currency,
            subtotal=subtotal,
            discount=discount,
            tax_amount=tax_amount,
            total=subtotal - discount + tax_amount,
            coupon_id=coupon_id,
            ip_address=ip_address,
            notes=notes,
            items=items,
            created_at=now,
            updated_at=now,
        )

    def activate(self, now: Optional[datetime] = None) -> None:
        if self.status != OrderStatus.PENDING:
            raise InvalidStateTransitionException("Order", self.status.value, OrderStatus.ACTIVE.value)
        now = now or utc_now()
        self.status = OrderStatus.ACTIVE
        self.activated_at = now
        self.updated_at = now

    def cancel(self, reason: Optional[str] = None, now: Optional[datetime] = None) -> None:
        if self.status != OrderStatus.PENDING:
            raise InvalidStateTransitionException("Order", self.status.value, OrderStatus.CANCELLED.value)
        now = now or utc_now()
        self.status = OrderStatus.CANCELLED
        self.cancelled_at = now
        self.updated_at = now
        if reason:
            note = f"Cancelled: {reason}"
            self.admin_notes = f"{self.admin_notes}\n{note}" if self.admin_notes else note


@dataclass
class HostingService:
    """
    托管服务 - 订单激活时每个订单条目生成一个

    状态机：pending → active（订单激活时），pending/active ⇄ suspended，
    任意非终态 → terminated（终态）。
    """

    id: Optional[int]
    customer_id: int
    order_id: int
    product_id: int
    product_name: str
    billing_cycle: str
    amount: Decimal
    status: ServiceStatus = ServiceStatus.PENDING
    domain: Optional[str] = None
    hostname: Optional[str] = None
    config_options: Dict[int, int] = field(default_factory=dict)
    registration_date: Optional[datetime] = None
    next_due_date: Optional[datetime] = None
    suspension_reason: Optional[str] = None
    termination_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.status = ServiceStatus(self.status)
        self.amount = to_decimal(self.amount)
        self.config_options = {int(k): int(v) for k, v in (self.config_options or {}).items()}
        self.registration_date = ensure_utc(self.registration_date)
        self.next_due_date = ensure_utc(self.next_due_date)
        self.termination_date = ensure_utc(self.termination_date)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    @classmethod
    def provision(cls, order: Order, item: OrderItem, now: Optional[datetime] = None) -> "HostingService":
        now = now or utc_now()
        return cls(
            id=None,
            customer_id=order.customer_id,
            order_id=order.id,
            product_id=item.product_id,
            product_name=item.product_name,
            billing_cycle=item.billing_cycle,
            amount=item.recurring_fee,
            domain=item.domain,
            hostname=item.hostname,
            config_options=dict(item.config_options),
            registration_date=now,
            next_due_date=add_billing_period(now, item.billing_cycle),
            created_at=now,
            updated_at=now,
        )

    def _ensure_not_terminated(self, target: str) -> None:
        if self.status == ServiceStatus.TERMINATED:
            raise InvalidStateTransitionException("Service", self.status.value, target)

    def activate(self, now: Optional[datetime] = None) -> None:
        """开通完成：pending → active，此后才进入到期续费扫描"""
        if self.status != ServiceStatus.PENDING:
            raise InvalidStateTransitionException("Service", self.status.value, ServiceStatus.ACTIVE.value)
        self.status = ServiceStatus.ACTIVE
        self.updated_at = now or utc_now()

    def suspend(self, reason: Optional[str] = None, now: Optional[datetime] = None) -> None:
        if self.status not in (ServiceStatus.ACTIVE, ServiceStatus.PENDING):
            raise InvalidStateTransitionException("Service", self.status.value, ServiceStatus.SUSPENDED.value)
        self.status = ServiceStatus.SUSPENDED
        self.suspension_reason = reason
        self.updated_at = now or utc_now()

    def unsuspend(self, now: Optional[datetime] = None) -> None:
        if self.status != ServiceStatus.SUSPENDED:
            raise InvalidStateTransitionException("Service", self.status.value, ServiceStatus.ACTIVE.value)
        self.status = ServiceStatus.ACTIVE
        self.suspension_reason = None
        self.updated_at = now or utc_now()

    def terminate(self, now: Optional[datetime] = None) -> None:
        self._ensure_not_terminated(ServiceStatus.TERMINATED.value)
        now = now or utc_now()
        self.status = ServiceStatus.TERMINATED
        self.termination_date = now
        self.updated_at = now

    def renew(self, now: Optional[datetime] = None) -> datetime:
        """续费：已到期则从当前时间推进，提前续费则从原到期日推进"""
        self._ensure_not_terminated("renewed")
        now = now or utc_now()
        base = self.next_due_date if self.next_due_date and self.next_due_date > now else now
        self.next_due_date = add_billing_period(base, self.billing_cycle)
        self.updated_at = now
        return self.next_due_date
