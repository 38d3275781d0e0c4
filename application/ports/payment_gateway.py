"""
Payment processor port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters and
registers them by gateway slug in a PaymentProcessorRegistry.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Protocol, runtime_checkable

from application.dtos.payments import (
    CardDetails,
    ChargeRequest,
    PaymentResult,
    RefundResult,
    SubscriptionRequest,
    SubscriptionResult,
)


@runtime_checkable
class PaymentProcessor(Protocol):
    """Capability interface every gateway processor implements.

    Implementations should be async and side-effect free beyond IO. Failures
    talking to the provider are raised as PaymentGatewayError subclasses.
    """

    slug: str

    async def process_payment(self, req: ChargeRequest) -> PaymentResult: ...

    async def process_refund(self, gateway_trans_id: str, amount: Decimal, currency: str) -> RefundResult: ...

    async def create_subscription(self, req: SubscriptionRequest) -> SubscriptionResult: ...

    async def cancel_subscription(self, gateway_sub_id: str) -> None: ...

    def validate_webhook(self, payload: bytes, signature: str) -> bool: ...

    async def tokenize_card(self, card: CardDetails) -> str: ...

    async def get_payment_url(self, req: ChargeRequest) -> str: ...
