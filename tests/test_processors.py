import time
from decimal import Decimal

import pytest
import stripe

from application.dtos.payments import ChargeRequest
from application.services.processor_registry import PaymentProcessorRegistry
from core.settings import PaymentSettings, PaymentTimeouts, StripeSettings
from domain.common.exceptions import ProcessorNotRegisteredException
from domain.webhook.signing import sign_payload
from infrastructure.external.payments import build_processor_registry
from infrastructure.external.payments.base import BasePaymentProcessor
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payments.manual import ManualProcessor
from infrastructure.external.payments.stripe_client import StripeProcessor


class _MapProcessor(BasePaymentProcessor):
    slug = "stripe"


def test_provider_status_mapping():
    p = _MapProcessor()
    assert p._map_status("succeeded") == "completed"
    assert p._map_status("requires_action") == "pending"
    assert p._map_status("something_new") == "something_new"


@pytest.mark.asyncio
async def test_base_processor_rejects_unsupported_operations():
    with pytest.raises(PaymentProviderError) as excinfo:
        await _MapProcessor().cancel_subscription("sub_1")
    assert excinfo.value.provider == "stripe"
    assert _MapProcessor().validate_webhook(b"{}", "sig") is False


@pytest.mark.asyncio
async def test_manual_processor_leaves_payment_pending():
    processor = ManualProcessor(instructions_url="https://example.com/wire")
    req = ChargeRequest(request_id=12, customer_id=1, amount=Decimal("25.00"), currency="usd")

    result = await processor.process_payment(req)

    assert result.success is False
    assert result.status == "pending"
    assert result.redirect_url.startswith("https://example.com/wire?request=12")
    refund = await processor.process_refund("wire-1", Decimal("5"), "USD")
    assert refund.success and refund.refund_id.startswith("manual-")


def test_manual_webhook_requires_shared_secret():
    payload = b'{"event":"transfer.received"}'
    signed = ManualProcessor(instructions_url="https://example.com/wire", webhook_secret="k")
    unsigned = ManualProcessor(instructions_url="https://example.com/wire")

    assert signed.validate_webhook(payload, sign_payload(payload, "k"))
    assert not signed.validate_webhook(payload, sign_payload(payload, "other"))
    assert not unsigned.validate_webhook(payload, sign_payload(payload, "k"))


def test_stripe_webhook_validation(monkeypatch):
    processor = StripeProcessor(
        secret_key="sk_test_123",
        webhook_secret="whsec_test",
        success_url="https://example.com/ok",
        cancel_url="https://example.com/cancel",
    )

    def _construct(payload, sig_header, secret):
        if sig_header != "t=1,v1=good":
            raise stripe.SignatureVerificationError("bad signature", sig_header)
        return {"type": "payment_intent.succeeded"}

    monkeypatch.setattr(stripe.Webhook, "construct_event", staticmethod(_construct))
    assert processor.validate_webhook(b"{}", "t=1,v1=good")
    assert not processor.validate_webhook(b"{}", "t=1,v1=bad")
    assert not processor.validate_webhook(b"{}", "")


@pytest.mark.asyncio
async def test_stripe_charge_uses_idempotency_key(monkeypatch):
    captured = {}

    def _create(**kwargs):
        captured.update(kwargs)
        return {"id": "pi_1", "status": "succeeded", "amount": 2500, "amount_received": 2500}

    monkeypatch.setattr(stripe.PaymentIntent, "create", _create)
    processor = StripeProcessor(
        secret_key="sk_test_123",
        success_url="https://example.com/ok",
        cancel_url="https://example.com/cancel",
    )
    req = ChargeRequest(request_id=7, customer_id=1, amount=Decimal("25.00"), currency="USD", card_token="pm_1")

    result = await processor.process_payment(req)

    assert result.success is True
    assert result.status == "completed"
    assert result.transaction_id == "pi_1"
    assert result.amount == Decimal("25")
    assert captured["amount"] == 2500
    assert captured["idempotency_key"] == "payreq-7"
    assert captured["api_key"] == "sk_test_123"


def test_registry_from_settings_skips_unconfigured_processors():
    registry = build_processor_registry(PaymentSettings(enabled_processors=["manual", "stripe", "bogus"]))
    assert registry.slugs() == ["manual"]

    configured = build_processor_registry(
        PaymentSettings(enabled_processors=["manual", "stripe"], stripe=StripeSettings(secret_key="sk_test_1"))
    )
    assert configured.slugs() == ["manual", "stripe"]
    assert isinstance(configured.get("Stripe"), StripeProcessor)


def test_registry_lookup_of_unknown_slug():
    registry = PaymentProcessorRegistry([ManualProcessor(instructions_url="https://example.com/wire")])
    assert "manual" in registry
    with pytest.raises(ProcessorNotRegisteredException):
        registry.get("paypal")


def test_registry_passes_configured_timeouts_to_processors():
    config = PaymentSettings(
        enabled_processors=["manual", "stripe"],
        stripe=StripeSettings(secret_key="sk_test_1"),
        timeouts=PaymentTimeouts(connect=0.5, read=2.0, write=2.0, total=3.0),
    )
    registry = build_processor_registry(config)

    stripe_processor = registry.get("stripe")
    assert stripe_processor.total_timeout == 3.0
    assert stripe_processor.timeouts.connect == 0.5
    assert stripe_processor.timeouts.read == 2.0
    assert registry.get("manual").total_timeout == 3.0


@pytest.mark.asyncio
async def test_stripe_call_exceeding_total_timeout_is_recoverable(monkeypatch):
    def _slow_create(**kwargs):
        time.sleep(0.3)
        return {"id": "pi_slow", "status": "succeeded", "amount": 100}

    monkeypatch.setattr(stripe.PaymentIntent, "create", _slow_create)
    processor = StripeProcessor(
        secret_key="sk_test_123",
        success_url="https://example.com/ok",
        cancel_url="https://example.com/cancel",
        retry={"max": 0, "base": 0.1},
        timeouts={"connect": 0.05, "read": 0.05, "write": 0.05, "total": 0.05},
    )
    req = ChargeRequest(request_id=8, customer_id=1, amount=Decimal("1.00"), currency="USD", card_token="pm_1")

    with pytest.raises(PaymentRecoverableError) as excinfo:
        await processor.process_payment(req)
    assert excinfo.value.provider_code == "timeout"
