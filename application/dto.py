"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输
"""
from pydantic import BaseModel, Field, field_validator, model_serializer, ConfigDict
from shared.codes import BusinessCode
from typing import Optional, Any
from datetime import datetime, timezone
from decimal import Decimal

from core.config import settings
from domain.cart.entity import CouponType
from domain.invoice.entity import InvoiceStatus
from domain.order.entity import OrderStatus, ServiceStatus
from domain.payment.entity import (
    AdjustmentType,
    PaymentMethodType,
    PaymentRequestStatus,
    SubscriptionStatus,
    TransactionStatus,
    TransactionType,
)
from domain.webhook.entity import DeliveryStatus


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class PaginationParams(DTOBase):
    """分页参数（页码/每页大小），自动派生 skip/limit"""
    page: int = Field(1, ge=1, description="页码，从1开始")
    size: int = Field(
        default=settings.DEFAULT_PAGE_SIZE,
        ge=1,
        le=settings.MAX_PAGE_SIZE,
        description="每页大小",
    )

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.size

    @property
    def limit(self) -> int:
        return self.size


class MessageDTO(DTOBase):
    """消息响应DTO"""
    message: str
    code: int = BusinessCode.SUCCESS


# ---- 购物车 ----


class CartCreateDTO(DTOBase):
    """获取或创建购物车：customer_id 与 session_id 二选一"""
    customer_id: Optional[int] = None
    session_id: Optional[str] = Field(None, max_length=128)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class CartItemAddDTO(DTOBase):
    product_id: int
    quantity: int = Field(1, description="小于 1 时按 1 处理")
    billing_cycle: str = Field("monthly", description="monthly/quarterly/semi-annually/annually/biennially/triennially")
    domain: Optional[str] = Field(None, max_length=255)
    hostname: Optional[str] = Field(None, max_length=255)
    config_options: dict[int, int] = Field(default_factory=dict, description="选项ID → 子选项ID")


class CartItemUpdateDTO(DTOBase):
    quantity: int = Field(..., ge=0, description="0 表示移除条目")


class CouponApplyDTO(DTOBase):
    code: str = Field(..., min_length=1, max_length=64)

    @field_validator("code")
    def _strip_code(cls, v):
        return v.strip()


class CartMergeDTO(DTOBase):
    session_id: str
    customer_id: int


class CartItemDTO(DTOBase):
    id: int
    product_id: int
    product_name: str
    billing_cycle: str
    quantity: int
    setup_fee: Decimal
    recurring_fee: Decimal
    discount: Decimal
    total: Decimal
    domain: Optional[str]
    hostname: Optional[str]
    config_options: dict[int, int] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


class CartSummaryDTO(DTOBase):
    """购物车汇总：每次读取时重新计算"""
    cart_id: int
    currency: str
    items: list[CartItemDTO]
    subtotal: Decimal
    total_discount: Decimal
    tax: Decimal
    total: Decimal
    coupon_code: Optional[str] = None


class CouponDTO(DTOBase):
    id: int
    code: str
    coupon_type: CouponType
    amount: Decimal
    max_uses: Optional[int]
    current_uses: int

    model_config = ConfigDict(from_attributes=True)


# ---- 订单与服务 ----


class OrderCreateDTO(DTOBase):
    customer_id: int
    cart_id: int
    notes: Optional[str] = Field(None, max_length=2000)


class OrderCancelDTO(DTOBase):
    reason: Optional[str] = Field(None, max_length=500)


class OrderItemDTO(DTOBase):
    id: int
    product_id: int
    product_name: str
    billing_cycle: str
    quantity: int
    setup_fee: Decimal
    recurring_fee: Decimal
    discount: Decimal
    total: Decimal
    domain: Optional[str]
    hostname: Optional[str]
    service_id: Optional[int]

    model_config = ConfigDict(from_attributes=True)


class OrderDTO(DTOBase):
    id: int
    order_number: str
    customer_id: int
    status: OrderStatus
    currency: str
    subtotal: Decimal
    discount: Decimal
    tax_amount: Decimal
    total: Decimal
    coupon_id: Optional[int]
    notes: Optional[str]
    items: list[OrderItemDTO]
    created_at: Optional[datetime]
    activated_at: Optional[datetime]
    cancelled_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class ServiceDTO(DTOBase):
    id: int
    customer_id: int
    order_id: int
    product_id: int
    product_name: str
    billing_cycle: str
    amount: Decimal
    status: ServiceStatus
    domain: Optional[str]
    hostname: Optional[str]
    registration_date: Optional[datetime]
    next_due_date: Optional[datetime]
    suspension_reason: Optional[str]
    termination_date: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class ServiceSuspendDTO(DTOBase):
    reason: Optional[str] = Field(None, max_length=500)


# ---- 账单 ----


class InvoiceCreateDTO(DTOBase):
    order_id: int
    due_days: Optional[int] = Field(None, ge=0, le=365)


class InvoicePaymentDTO(DTOBase):
    """线下入账"""
    amount: Decimal = Field(..., gt=0)
    gateway: str = Field("manual", max_length=50)
    gateway_ref: Optional[str] = Field(None, max_length=255)


class InvoiceLineDTO(DTOBase):
    """手工开票的一行"""
    description: str = Field(..., min_length=1, max_length=500)
    unit_price: Decimal = Field(..., ge=0)
    quantity: int = Field(1, ge=1)
    discount: Decimal = Field(Decimal("0"), ge=0)
    taxable: bool = True
    item_type: str = Field("custom", max_length=30)
    service_id: Optional[int] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None


class AdHocInvoiceCreateDTO(DTOBase):
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    due_days: Optional[int] = Field(None, ge=0, le=365)
    items: list[InvoiceLineDTO] = Field(..., min_length=1)


class InvoiceRefundDTO(DTOBase):
    amount: Decimal = Field(..., gt=0)
    reason: Optional[str] = Field(None, max_length=255)
    staff_id: Optional[int] = None


class InvoiceItemDTO(DTOBase):
    id: int
    description: str
    amount: Decimal
    quantity: int
    service_id: Optional[int]
    item_type: str = "service"
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceDTO(DTOBase):
    id: int
    invoice_number: str
    customer_id: int
    order_id: Optional[int]
    status: InvoiceStatus
    currency: str
    subtotal: Decimal
    discount: Decimal
    tax_amount: Decimal
    total: Decimal
    amount_paid: Decimal
    balance: Decimal
    due_date: Optional[datetime]
    paid_at: Optional[datetime]
    items: list[InvoiceItemDTO] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


# ---- 支付 ----


class GatewayDTO(DTOBase):
    id: int
    name: str
    slug: str
    display_name: Optional[str]
    supports_refund: bool
    supports_recurring: bool
    supports_tokenize: bool
    fee_percent: Decimal
    fee_fixed: Decimal
    min_amount: Optional[Decimal]
    max_amount: Optional[Decimal]

    model_config = ConfigDict(from_attributes=True)


class PaymentRequestDTO(DTOBase):
    id: int
    customer_id: int
    gateway_id: int
    invoice_id: Optional[int]
    amount: Decimal
    currency: str
    status: PaymentRequestStatus
    gateway_ref: Optional[str]
    payment_url: Optional[str]
    error_message: Optional[str]
    transaction_id: Optional[int]
    expires_at: Optional[datetime]
    processed_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class TransactionDTO(DTOBase):
    id: int
    customer_id: int
    transaction_type: TransactionType
    status: TransactionStatus
    currency: str
    amount: Decimal
    fee: Decimal
    invoice_id: Optional[int]
    gateway: Optional[str]
    gateway_trans_id: Optional[str]
    description: Optional[str]
    refunded_amount: Decimal
    refund_of_id: Optional[int]
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class CreditAdjustmentDTO(DTOBase):
    id: int
    customer_id: int
    adjustment_type: AdjustmentType
    amount: Decimal
    currency: str
    balance_before: Decimal
    balance_after: Decimal
    reason: Optional[str]
    related_type: Optional[str]
    related_id: Optional[int]
    staff_id: Optional[int]
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class SubscriptionDTO(DTOBase):
    id: int
    customer_id: int
    gateway_id: int
    service_id: Optional[int]
    gateway_sub_id: Optional[str]
    amount: Decimal
    currency: str
    interval: str
    interval_count: int
    status: SubscriptionStatus
    current_period_start: Optional[datetime]
    current_period_end: Optional[datetime]
    cancel_at_period_end: bool
    cancelled_at: Optional[datetime]
    ended_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class PaymentMethodDTO(DTOBase):
    id: int
    customer_id: int
    method_type: PaymentMethodType
    gateway: str
    gateway_method_id: Optional[str]
    label: Optional[str]
    display_name: str
    last4: Optional[str]
    brand: Optional[str]
    expiry_month: Optional[int]
    expiry_year: Optional[int]
    is_default: bool
    active: bool
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class AutoPaymentDTO(DTOBase):
    id: int
    customer_id: int
    payment_method_id: int
    active: bool
    max_amount: Decimal = Field(..., description="0 表示不限额")
    days_before: int
    last_attempt: Optional[datetime]
    last_success: Optional[datetime]
    consecutive_fails: int

    model_config = ConfigDict(from_attributes=True)


# ---- 出站 Webhook ----


class WebhookCreateDTO(DTOBase):
    customer_id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=100)
    url: str = Field(..., max_length=1000)
    secret: Optional[str] = Field(None, max_length=255)
    events: list[str] = Field(default_factory=list, description="事件类型列表，* 表示全部")
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: int = Field(30, ge=1, le=120)
    retry_attempts: int = Field(3, ge=1, le=10)
    verify_ssl: bool = True


class WebhookDTO(DTOBase):
    id: int
    customer_id: Optional[int]
    name: str
    url: str
    events: list[str]
    active: bool
    timeout: int
    retry_attempts: int
    last_triggered: Optional[datetime]
    failure_count: int

    model_config = ConfigDict(from_attributes=True)


class WebhookDeliveryDTO(DTOBase):
    id: int
    webhook_id: int
    event_type: str
    status: DeliveryStatus
    attempts: int
    response_code: Optional[int]
    response_time_ms: Optional[int]
    error_message: Optional[str]
    delivered_at: Optional[datetime]
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


# ---- 通知 ----


class NotificationSendDTO(DTOBase):
    customer_id: int
    notification_type: str = Field(..., max_length=50)
    title: str = Field(..., max_length=255)
    message: str
    link: Optional[str] = Field(None, max_length=500)


class NotificationDTO(DTOBase):
    id: int
    customer_id: int
    notification_type: str
    title: str
    message: str
    link: Optional[str]
    read: bool
    read_at: Optional[datetime]
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class TaxPreviewDTO(DTOBase):
    amount: Decimal
    rate: Decimal
    tax: Decimal
    inclusive: bool

    model_config = ConfigDict(from_attributes=True)


def to_payload(value: Any) -> Any:
    """把 DTO 或 DTO 列表转换为可 JSON 序列化的结构"""
    if isinstance(value, list):
        return [to_payload(v) for v in value]
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value
