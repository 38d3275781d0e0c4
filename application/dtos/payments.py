"""
Payment DTOs (Pydantic v2) used at application boundaries.

Processor inputs/outputs form the uniform result shape every gateway
processor returns; the ledger only interprets these models.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.types import condecimal

# Common ISO-4217 currencies (extend as needed)
ISO_4217 = {
    "USD", "EUR", "GBP", "CNY", "JPY", "KRW", "HKD", "AUD", "CAD", "SGD",
}


def _normalize_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    if u not in ISO_4217:
        raise ValueError("unsupported currency")
    return u


class _CurrencyModel(BaseModel):
    currency: str = "USD"

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return _normalize_currency(v)


class ChargeRequest(_CurrencyModel):
    """交给处理器的扣款请求"""

    request_id: int
    customer_id: int
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    invoice_id: Optional[int] = None
    description: Optional[str] = None
    card_token: Optional[str] = None
    ip_address: Optional[str] = None
    return_url: Optional[str] = None
    cancel_url: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class PaymentResult(BaseModel):
    success: bool
    status: str
    transaction_id: Optional[str] = None
    amount: Optional[Decimal] = None
    fee: Optional[Decimal] = None
    redirect_url: Optional[str] = None
    message: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class RefundResult(BaseModel):
    success: bool
    refund_id: Optional[str] = None
    status: str = "succeeded"
    message: Optional[str] = None


class SubscriptionRequest(_CurrencyModel):
    customer_id: int
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    interval: str = "month"
    interval_count: int = Field(default=1, ge=1)
    payment_method: Optional[str] = None
    service_id: Optional[int] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SubscriptionResult(BaseModel):
    success: bool
    subscription_id: Optional[str] = None
    status: str = "active"
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    message: Optional[str] = None


class CardDetails(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    number: str = Field(min_length=12, max_length=19)
    exp_month: int = Field(ge=1, le=12)
    exp_year: int = Field(ge=2000)
    cvc: str = Field(min_length=3, max_length=4)
    holder_name: Optional[str] = None


# ---- API facing ----


class CreatePaymentRequestIn(_CurrencyModel):
    customer_id: int
    gateway: str
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    invoice_id: Optional[int] = None


class ProcessPaymentIn(BaseModel):
    card_token: Optional[str] = None


class PayWithCreditIn(BaseModel):
    customer_id: int
    invoice_id: int
    amount: condecimal(gt=0)  # type: ignore[valid-type]


class AddCreditIn(_CurrencyModel):
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    reason: str
    staff_id: Optional[int] = None


class RefundIn(BaseModel):
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    reason: Optional[str] = None
    staff_id: Optional[int] = None
    via_gateway: bool = False


class CreateSubscriptionIn(_CurrencyModel):
    customer_id: int
    gateway: str
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    interval: str = "month"
    interval_count: int = Field(default=1, ge=1)
    service_id: Optional[int] = None
    payment_method: Optional[str] = None


class CancelSubscriptionIn(BaseModel):
    immediately: bool = False


class SavePaymentMethodIn(BaseModel):
    method_type: str = Field(..., pattern="^(card|paypal|bank_wire|crypto|alipay|wechat_pay)$")
    gateway: str = Field(..., min_length=1, max_length=50)
    gateway_method_id: Optional[str] = Field(default=None, max_length=255)
    label: Optional[str] = Field(default=None, max_length=100)
    last4: Optional[str] = Field(default=None, pattern=r"^\d{4}$")
    brand: Optional[str] = Field(default=None, max_length=32)
    expiry_month: Optional[int] = Field(default=None, ge=1, le=12)
    expiry_year: Optional[int] = Field(default=None, ge=2000, le=2100)
    is_default: bool = False


class SetupAutoPaymentIn(BaseModel):
    payment_method_id: int
    max_amount: condecimal(ge=0) = Decimal("0")  # type: ignore[valid-type]
    days_before: int = Field(default=3, ge=0, le=30)
