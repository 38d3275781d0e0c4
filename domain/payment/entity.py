"""
支付领域实体 - 网关、支付请求、交易流水、余额调整、订阅、支付方式与自动扣款
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from domain.common.exceptions import (
    InvalidAmountException,
    InvalidStateTransitionException,
    RefundExceedsRemainingException,
    TransactionNotRefundableException,
    DomainValidationException,
)
from domain.common.money import HUNDRED, ZERO, quantize_money, to_decimal
from domain.common.timeutil import ensure_utc, utc_now

CREDIT_BALANCE_GATEWAY = "credit_balance"


class TransactionType(str, Enum):
    PAYMENT = "payment"
    REFUND = "refund"
    CREDIT = "credit"
    DEBIT = "debit"
    CHARGEBACK = "chargeback"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    DISPUTED = "disputed"


class PaymentRequestStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class AdjustmentType(str, Enum):
    ADD = "add"
    SUBTRACT = "subtract"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


@dataclass
class PaymentGateway:
    """支付网关配置记录，slug 对应已注册的处理器"""

    id: Optional[int]
    name: str
    slug: str
    display_name: Optional[str] = None
    active: bool = True
    visible: bool = True
    supports_refund: bool = False
    supports_recurring: bool = False
    supports_tokenize: bool = False
    fee_percent: Decimal = ZERO
    fee_fixed: Decimal = ZERO
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    sort_order: int = 0

    def __post_init__(self) -> None:
        self.fee_percent = to_decimal(self.fee_percent)
        self.fee_fixed = to_decimal(self.fee_fixed)

    def calculate_fee(self, amount: Decimal) -> Decimal:
        amount = to_decimal(amount)
        return quantize_money(amount * self.fee_percent / HUNDRED + self.fee_fixed)


@dataclass
class Transaction:
    """
    交易流水（只追加）

    业务规则：
    1. 退款以负数记录，并通过 refund_of_id 关联原交易
    2. 原交易累计退款不能超过原金额
    """

    id: Optional[int]
    customer_id: int
    transaction_type: TransactionType
    status: TransactionStatus
    currency: str
    amount: Decimal
    fee: Decimal = ZERO
    invoice_id: Optional[int] = None
    gateway: Optional[str] = None
    gateway_trans_id: Optional[str] = None
    description: Optional[str] = None
    refunded_amount: Decimal = ZERO
    refund_of_id: Optional[int] = None
    ip_address: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.transaction_type = TransactionType(self.transaction_type)
        self.status = TransactionStatus(self.status)
        self.amount = to_decimal(self.amount)
        self.fee = to_decimal(self.fee)
        self.refunded_amount = to_decimal(self.refunded_amount)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    @property
    def remaining_refundable(self) -> Decimal:
        return self.amount - self.refunded_amount

    def is_refundable(self) -> bool:
        return (
            self.transaction_type == TransactionType.PAYMENT
            and self.status == TransactionStatus.COMPLETED
            and self.refunded_amount < self.amount
        )

    def register_refund(self, amount: Decimal, now: Optional[datetime] = None) -> None:
        """累加已退款金额；全额退款后状态变为 refunded"""
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise InvalidAmountException(amount)
        if not self.is_refundable():
            raise TransactionNotRefundableException(self.id)
        if amount > self.remaining_refundable:
            raise RefundExceedsRemainingException(amount, self.remaining_refundable)
        self.refunded_amount += amount
        if self.refunded_amount >= self.amount:
            self.status = TransactionStatus.REFUNDED
        self.updated_at = now or utc_now()

    def build_refund(
        self,
        amount: Decimal,
        *,
        reason: Optional[str] = None,
        staff_id: Optional[int] = None,
        gateway_trans_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "Transaction":
        metadata: Dict[str, Any] = {}
        if staff_id is not None:
            metadata["staff_id"] = staff_id
        return Transaction(
            id=None,
            customer_id=self.customer_id,
            transaction_type=TransactionType.REFUND,
            status=TransactionStatus.COMPLETED,
            currency=self.currency,
            amount=-to_decimal(amount),
            invoice_id=self.invoice_id,
            gateway=self.gateway,
            gateway_trans_id=gateway_trans_id,
            description=f"Refund: {reason}" if reason else "Refund",
            refund_of_id=self.id,
            metadata=metadata,
            created_at=now or utc_now(),
        )


@dataclass
class CreditAdjustment:
    """
    余额调整审计记录（只追加）

    balance_after = balance_before ± amount
    """

    id: Optional[int]
    customer_id: int
    adjustment_type: AdjustmentType
    amount: Decimal
    currency: str
    balance_before: Decimal
    balance_after: Decimal
    reason: Optional[str] = None
    related_type: Optional[str] = None
    related_id: Optional[int] = None
    staff_id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.adjustment_type = AdjustmentType(self.adjustment_type)
        self.amount = to_decimal(self.amount)
        self.balance_before = to_decimal(self.balance_before)
        self.balance_after = to_decimal(self.balance_after)
        self.created_at = ensure_utc(self.created_at)
        sign = 1 if self.adjustment_type == AdjustmentType.ADD else -1
        if self.balance_before + sign * self.amount != self.balance_after:
            raise DomainValidationException(
                "Credit adjustment balances do not chain",
                details={
                    "before": str(self.balance_before),
                    "after": str(self.balance_after),
                    "amount": str(self.amount),
                },
            )


@dataclass
class PaymentRequest:
    """短期网关扣款请求，带过期时间"""

    id: Optional[int]
    customer_id: int
    gateway_id: int
    amount: Decimal
    currency: str
    status: PaymentRequestStatus = PaymentRequestStatus.PENDING
    invoice_id: Optional[int] = None
    gateway_ref: Optional[str] = None
    payment_url: Optional[str] = None
    error_message: Optional[str] = None
    ip_address: Optional[str] = None
    transaction_id: Optional[int] = None
    expires_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.status = PaymentRequestStatus(self.status)
        self.amount = to_decimal(self.amount)
        if self.amount <= ZERO:
            raise InvalidAmountException(self.amount)
        self.expires_at = ensure_utc(self.expires_at)
        self.processed_at = ensure_utc(self.processed_at)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    @classmethod
    def open(
        cls,
        *,
        customer_id: int,
        gateway_id: int,
        amount: Decimal,
        currency: str,
        invoice_id: Optional[int] = None,
        ip_address: Optional[str] = None,
        ttl: timedelta = timedelta(hours=24),
        now: Optional[datetime] = None,
    ) -> "PaymentRequest":
        now = now or utc_now()
        return cls(
            id=None,
            customer_id=customer_id,
            gateway_id=gateway_id,
            amount=amount,
            currency=currency,
            invoice_id=invoice_id,
            ip_address=ip_address,
            expires_at=now + ttl,
            created_at=now,
            updated_at=now,
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at is not None and (now or utc_now()) > self.expires_at

    def _transition(self, target: PaymentRequestStatus, allowed: set, now: Optional[datetime]) -> datetime:
        if self.status not in allowed:
            raise InvalidStateTransitionException("PaymentRequest", self.status.value, target.value)
        now = now or utc_now()
        self.status = target
        self.updated_at = now
        return now

    def mark_expired(self, now: Optional[datetime] = None) -> None:
        self._transition(PaymentRequestStatus.EXPIRED, {PaymentRequestStatus.PENDING}, now)

    def mark_processing(self, now: Optional[datetime] = None) -> None:
        self._transition(PaymentRequestStatus.PROCESSING, {PaymentRequestStatus.PENDING}, now)

    def mark_failed(self, message: str, now: Optional[datetime] = None) -> None:
        self.processed_at = self._transition(PaymentRequestStatus.FAILED, {PaymentRequestStatus.PROCESSING}, now)
        self.error_message = message

    def mark_settled(
        self,
        status: PaymentRequestStatus,
        *,
        gateway_ref: Optional[str] = None,
        transaction_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """处理器返回结果后落定状态（成功时关联交易）"""
        self.processed_at = self._transition(status, {PaymentRequestStatus.PROCESSING}, now)
        self.gateway_ref = gateway_ref or self.gateway_ref
        self.transaction_id = transaction_id


@dataclass
class PaymentSubscription:
    """网关侧周期扣款授权"""

    id: Optional[int]
    customer_id: int
    gateway_id: int
    amount: Decimal
    currency: str
    interval: str = "month"
    interval_count: int = 1
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    service_id: Optional[int] = None
    gateway_sub_id: Optional[str] = None
    payment_method: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    cancelled_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.status = SubscriptionStatus(self.status)
        self.amount = to_decimal(self.amount)
        for name in ("current_period_start", "current_period_end", "cancelled_at", "ended_at", "created_at", "updated_at"):
            setattr(self, name, ensure_utc(getattr(self, name)))

    def cancel(self, *, immediately: bool, now: Optional[datetime] = None) -> None:
        if self.status == SubscriptionStatus.CANCELLED:
            raise InvalidStateTransitionException("Subscription", self.status.value, SubscriptionStatus.CANCELLED.value)
        now = now or utc_now()
        self.cancelled_at = now
        self.updated_at = now
        if immediately:
            self.status = SubscriptionStatus.CANCELLED
            self.ended_at = now
        else:
            self.cancel_at_period_end = True


class PaymentMethodType(str, Enum):
    CARD = "card"
    PAYPAL = "paypal"
    BANK_WIRE = "bank_wire"
    CRYPTO = "crypto"
    ALIPAY = "alipay"
    WECHAT_PAY = "wechat_pay"


@dataclass
class PaymentMethod:
    """客户保存的支付方式（网关侧令牌，不存卡号）"""

    id: Optional[int]
    customer_id: int
    method_type: PaymentMethodType
    gateway: str
    gateway_method_id: Optional[str] = None
    label: Optional[str] = None
    last4: Optional[str] = None
    brand: Optional[str] = None
    expiry_month: Optional[int] = None
    expiry_year: Optional[int] = None
    is_default: bool = False
    active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.method_type = PaymentMethodType(self.method_type)
        if self.last4 is not None and (len(self.last4) != 4 or not self.last4.isdigit()):
            raise DomainValidationException("last4 must be exactly four digits", field="last4")
        if self.expiry_month is not None and not 1 <= self.expiry_month <= 12:
            raise DomainValidationException("Expiry month must be between 1 and 12", field="expiry_month")
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    @property
    def display_name(self) -> str:
        if self.label:
            return self.label
        if self.method_type == PaymentMethodType.CARD:
            if self.brand and self.last4:
                return f"{self.brand} ending in {self.last4}"
            if self.last4:
                return f"Card ending in {self.last4}"
            return "Credit Card"
        if self.method_type == PaymentMethodType.PAYPAL:
            return "PayPal"
        if self.method_type == PaymentMethodType.BANK_WIRE:
            return "Bank Transfer"
        return self.method_type.value

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """卡片在有效期月份结束后过期；非卡片不过期"""
        if self.method_type != PaymentMethodType.CARD or not self.expiry_year or not self.expiry_month:
            return False
        now = now or utc_now()
        return (now.year, now.month) > (self.expiry_year, self.expiry_month)


@dataclass
class AutoPaymentConfig:
    """
    客户的自动扣款设置（每个客户一条）

    max_amount 为 0 表示不限额；days_before 为到期前几天发起扣款。
    """

    id: Optional[int]
    customer_id: int
    payment_method_id: int
    active: bool = True
    max_amount: Decimal = ZERO
    days_before: int = 3
    last_attempt: Optional[datetime] = None
    last_success: Optional[datetime] = None
    consecutive_fails: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.max_amount = to_decimal(self.max_amount)
        if self.max_amount < ZERO:
            raise DomainValidationException("max_amount must not be negative", field="max_amount")
        if self.days_before < 0:
            raise DomainValidationException("days_before must not be negative", field="days_before")
        for name in ("last_attempt", "last_success", "created_at", "updated_at"):
            setattr(self, name, ensure_utc(getattr(self, name)))

    def covers(self, amount: Decimal) -> bool:
        return self.max_amount == ZERO or to_decimal(amount) <= self.max_amount


@dataclass
class GatewayWebhookLog:
    """网关回调接收记录，供后续异步处理"""

    id: Optional[int]
    gateway_id: int
    event_type: Optional[str]
    payload: str
    status: str = "received"
    created_at: Optional[datetime] = None
