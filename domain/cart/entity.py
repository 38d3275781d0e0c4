"""
购物车领域实体 - 购物车、购物车条目与优惠券
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from domain.common.exceptions import DomainValidationException
from domain.common.money import HUNDRED, ZERO, clamp, money_sum, quantize_money, to_decimal
from domain.common.timeutil import ensure_utc, utc_now


class CouponType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_SETUP = "free_setup"
    OVERRIDE = "override"


class CouponStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass
class Coupon:
    """
    优惠券

    业务规则：
    1. 仅 active 且在有效期内可用
    2. 设置了 max_uses 时，current_uses 不得达到上限
    3. product_ids 非空时仅作用于指定产品
    """

    id: Optional[int]
    code: str
    coupon_type: CouponType
    amount: Decimal
    status: CouponStatus = CouponStatus.ACTIVE
    max_uses: Optional[int] = None
    current_uses: int = 0
    product_ids: List[int] = field(default_factory=list)
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.amount = to_decimal(self.amount)
        self.coupon_type = CouponType(self.coupon_type)
        self.status = CouponStatus(self.status)
        self.starts_at = ensure_utc(self.starts_at)
        self.expires_at = ensure_utc(self.expires_at)

    def invalid_reason(self, now: Optional[datetime] = None) -> Optional[str]:
        now = now or utc_now()
        if self.status != CouponStatus.ACTIVE:
            return "inactive"
        if self.starts_at and now < self.starts_at:
            return "not_started"
        if self.expires_at and now > self.expires_at:
            return "expired"
        if self.max_uses is not None and self.current_uses >= self.max_uses:
            return "usage_exhausted"
        return None

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return self.invalid_reason(now) is None

    def applies_to(self, product_id: int) -> bool:
        return not self.product_ids or product_id in self.product_ids

    def discount_for(self, item: "CartItem") -> Decimal:
        """计算单个条目的折扣，结果限定在 [0, 条目小计]"""
        if not self.applies_to(item.product_id):
            return ZERO
        subtotal = item.subtotal
        if self.coupon_type == CouponType.PERCENTAGE:
            discount = quantize_money(subtotal * self.amount / HUNDRED)
        elif self.coupon_type == CouponType.FIXED:
            discount = self.amount
        elif self.coupon_type == CouponType.FREE_SETUP:
            discount = item.setup_fee * item.quantity
        elif self.coupon_type == CouponType.OVERRIDE:
            discount = subtotal - self.amount * item.quantity
        else:
            discount = ZERO
        return clamp(discount, ZERO, subtotal)


@dataclass
class CartItem:
    """
    购物车条目

    total 始终由 (setup_fee + recurring_fee) × quantity − discount 推导，
    任何修改都通过方法完成以保证重新计算。
    """

    id: Optional[int]
    cart_id: Optional[int]
    product_id: int
    product_name: str
    billing_cycle: str
    quantity: int = 1
    setup_fee: Decimal = ZERO
    recurring_fee: Decimal = ZERO
    discount: Decimal = ZERO
    total: Decimal = ZERO
    domain: Optional[str] = None
    hostname: Optional[str] = None
    config_options: Dict[int, int] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise DomainValidationException("Quantity must be at least 1", field="quantity")
        self.setup_fee = to_decimal(self.setup_fee)
        self.recurring_fee = to_decimal(self.recurring_fee)
        self.discount = to_decimal(self.discount)
        self.config_options = {int(k): int(v) for k, v in (self.config_options or {}).items()}
        self.recalculate()

    @property
    def subtotal(self) -> Decimal:
        """折扣前小计"""
        return (self.setup_fee + self.recurring_fee) * self.quantity

    def recalculate(self) -> None:
        self.discount = clamp(self.discount, ZERO, self.subtotal)
        self.total = self.subtotal - self.discount

    def change_quantity(self, quantity: int) -> None:
        if quantity < 1:
            raise DomainValidationException("Quantity must be at least 1", field="quantity")
        self.quantity = quantity
        self.recalculate()

    def apply_discount(self, discount: Decimal) -> None:
        self.discount = to_decimal(discount)
        self.recalculate()

    def same_line_as(self, other: "CartItem") -> bool:
        """同一产品、周期、配置与域名视为同一行，可合并数量"""
        return (
            self.product_id == other.product_id
            and self.billing_cycle == other.billing_cycle
            and self.config_options == other.config_options
            and (self.domain or None) == (other.domain or None)
        )


@dataclass
class Cart:
    """
    购物车聚合根

    业务规则：
    1. 归属于注册客户或匿名会话之一，且只能其一
    2. 过期后视为不存在
    """

    id: Optional[int]
    customer_id: Optional[int] = None
    session_id: Optional[str] = None
    currency: str = "USD"
    coupon_id: Optional[int] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[CartItem] = field(default_factory=list)

    def __post_init__(self) -> None:
        if (self.customer_id is None) == (not self.session_id):
            raise DomainValidationException(
                "Cart must belong to exactly one of customer or session",
                field="customer_id",
            )
        self.currency = (self.currency or "USD").upper()
        self.expires_at = ensure_utc(self.expires_at)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    @classmethod
    def open(
        cls,
        *,
        customer_id: Optional[int] = None,
        session_id: Optional[str] = None,
        currency: str = "USD",
        ttl: timedelta = timedelta(days=7),
        now: Optional[datetime] = None,
    ) -> "Cart":
        now = now or utc_now()
        return cls(
            id=None,
            customer_id=customer_id,
            session_id=session_id,
            currency=currency,
            expires_at=now + ttl,
            created_at=now,
            updated_at=now,
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at is not None and (now or utc_now()) > self.expires_at

    def is_empty(self) -> bool:
        return not self.items

    def find_item(self, item_id: int) -> Optional[CartItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def find_same_line(self, candidate: CartItem) -> Optional[CartItem]:
        for item in self.items:
            if item.same_line_as(candidate):
                return item
        return None

    def apply_coupon(self, coupon: Optional[Coupon]) -> None:
        """按优惠券规则重算所有条目折扣；None 表示清除折扣"""
        self.coupon_id = coupon.id if coupon else None
        for item in self.items:
            item.apply_discount(coupon.discount_for(item) if coupon else ZERO)

    @property
    def subtotal(self) -> Decimal:
        return money_sum(item.subtotal for item in self.items)

    @property
    def total_discount(self) -> Decimal:
        return money_sum(item.discount for item in self.items)
