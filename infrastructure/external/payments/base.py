"""
Base payment processor implementing shared concerns: retry, logging, mapping.

Concrete processors subclass and implement provider-specific calls. Anything a
processor does not support raises PaymentProviderError so the caller sees a
uniform gateway failure.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from application.dtos.payments import (
    CardDetails,
    ChargeRequest,
    PaymentResult,
    RefundResult,
    SubscriptionRequest,
    SubscriptionResult,
)
from core.logging_config import get_logger
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL

logger = get_logger(__name__)


class BasePaymentProcessor:
    slug: str = "base"

    def __init__(
        self,
        *,
        retry: Optional[dict[str, Any]] = None,
        timeouts: Optional[dict[str, float]] = None,
    ) -> None:
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 10.0, "write": 10.0, "total": 15.0}

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @property
    def total_timeout(self) -> float:
        """单次网关调用的总超时（秒）"""
        return float(self._timeouts_cfg["total"])

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError, PaymentRecoverableError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    def _unsupported(self, operation: str) -> PaymentProviderError:
        return PaymentProviderError(f"{operation} is not supported by {self.slug}", provider=self.slug)

    async def process_payment(self, req: ChargeRequest) -> PaymentResult:
        raise self._unsupported("process_payment")

    async def process_refund(self, gateway_trans_id: str, amount: Decimal, currency: str) -> RefundResult:
        raise self._unsupported("process_refund")

    async def create_subscription(self, req: SubscriptionRequest) -> SubscriptionResult:
        raise self._unsupported("create_subscription")

    async def cancel_subscription(self, gateway_sub_id: str) -> None:
        raise self._unsupported("cancel_subscription")

    def validate_webhook(self, payload: bytes, signature: str) -> bool:
        return False

    async def tokenize_card(self, card: CardDetails) -> str:
        raise self._unsupported("tokenize_card")

    async def get_payment_url(self, req: ChargeRequest) -> str:
        raise self._unsupported("get_payment_url")

    # Helpers
    def _map_status(self, provider_status: str) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.slug, {})
        return mapping.get(provider_status, provider_status)

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.slug,
            **kwargs,
        )
