"""
Stripe adapter using the official stripe-python SDK.

Notes on SDK usage:
- Card charges use PaymentIntents confirmed server-side with a tokenized
  PaymentMethod; without a token the customer is sent to a Checkout Session.
- The SDK is synchronous, so calls run in a worker thread.
- Idempotency keys derive from the payment request id so a retried call never
  double-charges.
- Webhook verification uses `stripe.Webhook.construct_event` with the
  `Stripe-Signature` header.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import stripe

from application.dtos.payments import (
    CardDetails,
    ChargeRequest,
    PaymentResult,
    RefundResult,
    SubscriptionRequest,
    SubscriptionResult,
)
from core.logging_config import get_logger
from infrastructure.external.payments.base import BasePaymentProcessor
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError

logger = get_logger(__name__)

ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW"}


def _from_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class StripeProcessor(BasePaymentProcessor):
    slug = "stripe"

    def __init__(
        self,
        *,
        secret_key: str,
        webhook_secret: Optional[str] = None,
        success_url: str,
        cancel_url: str,
        retry: Optional[dict[str, Any]] = None,
        timeouts: Optional[dict[str, float]] = None,
    ) -> None:
        super().__init__(retry=retry, timeouts=timeouts)
        if not secret_key:
            raise ValueError("Stripe secret key is required")
        self._api_key = secret_key
        self._webhook_secret = webhook_secret
        self._success_url = success_url
        self._cancel_url = cancel_url

    @staticmethod
    def _to_minor(amount: Decimal, currency: str) -> int:
        # Stripe expects amounts in the smallest currency unit
        exponent = 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2
        return int((Decimal(amount) * (Decimal(10) ** exponent)).to_integral_value())

    @staticmethod
    def _from_minor(amount: int, currency: str) -> Decimal:
        exponent = 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2
        return Decimal(amount) / (Decimal(10) ** exponent)

    async def _call(self, fn, *args, **kwargs):
        """在线程中调用 SDK，并把 SDK 异常翻译为统一的网关异常"""
        kwargs = {key: value for key, value in kwargs.items() if value is not None}

        async def _once():
            try:
                return await asyncio.wait_for(
                    asyncio.to_thread(fn, *args, api_key=self._api_key, **kwargs),
                    timeout=self.total_timeout,
                )
            except asyncio.TimeoutError as exc:
                raise PaymentRecoverableError(
                    f"Stripe call timed out after {self.total_timeout}s", provider=self.slug, provider_code="timeout"
                ) from exc
            except (stripe.APIConnectionError, stripe.RateLimitError) as exc:
                raise PaymentRecoverableError(str(exc), provider=self.slug, provider_code=exc.code) from exc

        try:
            return await self._retry(_once)
        except stripe.StripeError as exc:
            raise PaymentProviderError(
                exc.user_message or str(exc), provider=self.slug, provider_code=exc.code
            ) from exc

    async def get_payment_url(self, req: ChargeRequest) -> str:
        session = await self._call(
            stripe.checkout.Session.create,
            mode="payment",
            line_items=[
                {
                    "price_data": {
                        "currency": req.currency.lower(),
                        "product_data": {"name": req.description or f"Payment #{req.request_id}"},
                        "unit_amount": self._to_minor(req.amount, req.currency),
                    },
                    "quantity": 1,
                }
            ],
            success_url=req.return_url or self._success_url,
            cancel_url=req.cancel_url or self._cancel_url,
            client_reference_id=str(req.request_id),
            metadata={"request_id": str(req.request_id), "customer_id": str(req.customer_id)},
            idempotency_key=f"checkout-{req.request_id}",
        )
        self._log("stripe_checkout_created", request_id=req.request_id, session_id=session["id"])
        return str(session["url"])

    async def process_payment(self, req: ChargeRequest) -> PaymentResult:
        if not req.card_token:
            url = await self.get_payment_url(req)
            return PaymentResult(success=False, status="pending", redirect_url=url, message="Redirect to checkout")

        metadata = {"request_id": str(req.request_id), "customer_id": str(req.customer_id)}
        if req.invoice_id is not None:
            metadata["invoice_id"] = str(req.invoice_id)
        try:
            intent = await self._call(
                stripe.PaymentIntent.create,
                amount=self._to_minor(req.amount, req.currency),
                currency=req.currency.lower(),
                payment_method=req.card_token,
                confirm=True,
                description=req.description,
                metadata=metadata,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                idempotency_key=f"payreq-{req.request_id}",
            )
        except PaymentProviderError as exc:
            if isinstance(exc.__cause__, stripe.CardError):
                self._log("stripe_card_declined", request_id=req.request_id, code=exc.provider_code)
                return PaymentResult(success=False, status="failed", message=exc.message)
            raise

        status = self._map_status(str(intent["status"]))
        self._log("stripe_payment_intent", request_id=req.request_id, intent_id=intent["id"], status=status)
        return PaymentResult(
            success=status == "completed",
            status=status,
            transaction_id=str(intent["id"]),
            amount=self._from_minor(int(intent.get("amount_received") or intent["amount"]), req.currency),
            raw={"latest_charge": intent.get("latest_charge")},
        )

    async def process_refund(self, gateway_trans_id: str, amount: Decimal, currency: str) -> RefundResult:
        refund = await self._call(
            stripe.Refund.create,
            payment_intent=gateway_trans_id,
            amount=self._to_minor(amount, currency),
        )
        status = str(refund.get("status") or "")
        self._log("stripe_refund_created", refund_id=refund["id"], status=status)
        return RefundResult(
            success=status in {"succeeded", "pending"},
            refund_id=str(refund["id"]),
            status=status,
            message=refund.get("failure_reason"),
        )

    async def create_subscription(self, req: SubscriptionRequest) -> SubscriptionResult:
        customer_ref = req.metadata.get("stripe_customer_id")
        if not customer_ref:
            customer = await self._call(
                stripe.Customer.create,
                payment_method=req.payment_method,
                invoice_settings={"default_payment_method": req.payment_method} if req.payment_method else None,
                metadata={"customer_id": str(req.customer_id)},
            )
            customer_ref = customer["id"]
        price = await self._call(
            stripe.Price.create,
            currency=req.currency.lower(),
            unit_amount=self._to_minor(req.amount, req.currency),
            recurring={"interval": req.interval, "interval_count": req.interval_count},
            product_data={"name": f"Service #{req.service_id}" if req.service_id else "Subscription"},
        )
        subscription = await self._call(
            stripe.Subscription.create,
            customer=customer_ref,
            items=[{"price": price["id"]}],
            metadata={"customer_id": str(req.customer_id), "service_id": str(req.service_id or "")},
        )
        self._log("stripe_subscription_created", subscription_id=subscription["id"], status=subscription["status"])
        return SubscriptionResult(
            success=subscription["status"] in {"active", "trialing", "incomplete"},
            subscription_id=str(subscription["id"]),
            status=str(subscription["status"]),
            current_period_start=_from_timestamp(subscription.get("current_period_start")),
            current_period_end=_from_timestamp(subscription.get("current_period_end")),
        )

    async def cancel_subscription(self, gateway_sub_id: str) -> None:
        await self._call(stripe.Subscription.cancel, gateway_sub_id)
        self._log("stripe_subscription_cancelled", subscription_id=gateway_sub_id)

    def validate_webhook(self, payload: bytes, signature: str) -> bool:
        if not self._webhook_secret or not signature:
            return False
        try:
            stripe.Webhook.construct_event(payload=payload, sig_header=signature, secret=self._webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            logger.warning("stripe_webhook_invalid", error=str(exc))
            return False
        return True

    async def tokenize_card(self, card: CardDetails) -> str:
        method = await self._call(
            stripe.PaymentMethod.create,
            type="card",
            card={
                "number": card.number,
                "exp_month": card.exp_month,
                "exp_year": card.exp_year,
                "cvc": card.cvc,
            },
            billing_details={"name": card.holder_name} if card.holder_name else None,
        )
        return str(method["id"])
