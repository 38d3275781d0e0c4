"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so processor credentials can be loaded
and rotated independently (env keys look like ``PAYMENT__STRIPE__SECRET_KEY``).
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 10.0
    write: float = 10.0
    total: float = 15.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    success_url: str = "https://example.com/billing/success"
    cancel_url: str = "https://example.com/billing/cancel"


class ManualSettings(BaseModel):
    """离线/银行转账处理器"""

    webhook_secret: Optional[str] = None
    instructions_url: str = "https://example.com/billing/bank-transfer"


class PaymentSettings(BaseSettings):
    request_expiry_hours: int = 24
    enabled_processors: list[str] = Field(default_factory=lambda: ["manual", "stripe"])
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)

    stripe: StripeSettings = Field(default_factory=StripeSettings)
    manual: ManualSettings = Field(default_factory=ManualSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
