import json
from datetime import timedelta
from decimal import Decimal

import pytest

from application.dtos.payments import CardDetails, PaymentResult
from application.services.payment_service import PaymentService
from application.services.webhook_service import WebhookService
from domain.common.exceptions import (
    CustomerNotFoundException,
    GatewayInactiveException,
    InsufficientBalanceException,
    InvalidAmountException,
    InvalidStateTransitionException,
    InvalidWebhookSignatureException,
    PaymentGatewayError,
    PaymentMethodNotFoundException,
    PaymentRequestExpiredException,
    RecurringNotSupportedException,
    RefundExceedsRemainingException,
    RefundNotSupportedException,
    StateConflictException,
)
from domain.invoice.entity import Invoice, generate_invoice_number
from domain.payment.entity import PaymentRequestStatus, TransactionStatus


async def _invoice(uow_factory, customer_id, total="50"):
    async with uow_factory() as uow:
        return await uow.invoice_repository.create(
            Invoice(
                id=None,
                invoice_number=generate_invoice_number(),
                customer_id=customer_id,
                currency="USD",
                subtotal=Decimal(total),
                discount=Decimal("0"),
                tax_amount=Decimal("0"),
                total=Decimal(total),
            )
        )


async def _paid_transaction(svc, customer_id, invoice_id=None, amount="50"):
    request = await svc.create_payment_request(
        customer_id=customer_id, gateway_slug="stub", amount=Decimal(amount), invoice_id=invoice_id
    )
    settled = await svc.process_payment(request.id, card_token="pm_card")
    return await svc.get_transaction(settled.transaction_id)


@pytest.mark.asyncio
async def test_credit_add_then_pay_chains_adjustments(uow_factory, seed, registry):
    customer = await seed.customer()
    invoice = await _invoice(uow_factory, customer.id)
    svc = PaymentService(uow_factory, registry)

    first = await svc.add_credit(customer.id, Decimal("50"), reason="prepayment", staff_id=7)
    txn = await svc.pay_with_credit(customer.id, invoice.id, Decimal("50"))

    history = await svc.get_credit_history(customer.id)
    assert len(history) == 2
    second = history[0]
    assert second.balance_before == first.balance_after == Decimal("50")
    assert second.balance_after == Decimal("0")
    assert second.related_type == "invoice" and second.related_id == invoice.id
    assert txn.gateway == "credit_balance"
    async with uow_factory(readonly=True) as uow:
        stored = await uow.customer_repository.get_by_id(customer.id)
        paid = await uow.invoice_repository.get_by_id(invoice.id)
    assert stored.credit == Decimal("0")
    assert paid.status.value == "paid"


@pytest.mark.asyncio
async def test_pay_with_credit_rejects_insufficient_balance(uow_factory, seed, registry):
    customer = await seed.customer(credit="5")
    invoice = await _invoice(uow_factory, customer.id)
    svc = PaymentService(uow_factory, registry)

    with pytest.raises(InsufficientBalanceException):
        await svc.pay_with_credit(customer.id, invoice.id, Decimal("10"))
    assert await svc.get_credit_history(customer.id) == []
    with pytest.raises(InvalidAmountException):
        await svc.add_credit(customer.id, Decimal("0"))


@pytest.mark.asyncio
async def test_process_payment_settles_invoice(uow_factory, seed, registry, stub_processor, scheduler):
    customer = await seed.customer()
    await seed.gateway(fee_percent="2.9", fee_fixed="0.30")
    invoice = await _invoice(uow_factory, customer.id, total="100")
    webhooks = WebhookService(uow_factory, scheduler)
    await webhooks.create_webhook(name="all", url="https://hooks.example.com/all", events=["*"])
    svc = PaymentService(uow_factory, registry, publisher=webhooks)

    request = await svc.create_payment_request(
        customer_id=customer.id, gateway_slug="stub", amount=Decimal("100"), invoice_id=invoice.id, ip_address="10.0.0.1"
    )
    assert request.status == PaymentRequestStatus.PENDING
    settled = await svc.process_payment(request.id, card_token="pm_card")

    assert settled.status == PaymentRequestStatus.COMPLETED
    assert settled.gateway_ref == "ch_1"
    assert stub_processor.charges[0].card_token == "pm_card"
    txn = await svc.get_transaction(settled.transaction_id)
    assert txn.amount == Decimal("100")
    assert txn.fee == Decimal("3.20")
    assert txn.invoice_id == invoice.id
    async with uow_factory(readonly=True) as uow:
        paid = await uow.invoice_repository.get_by_id(invoice.id)
    assert paid.status.value == "paid"
    assert {job[1] for job in scheduler.jobs} == {"payment.completed", "invoice.paid"}


@pytest.mark.asyncio
async def test_expired_request_is_marked_and_rejected(uow_factory, seed, registry, stub_processor):
    customer = await seed.customer()
    await seed.gateway()
    svc = PaymentService(uow_factory, registry, request_ttl=timedelta(seconds=-1))
    request = await svc.create_payment_request(customer_id=customer.id, gateway_slug="stub", amount=Decimal("10"))

    with pytest.raises(PaymentRequestExpiredException):
        await svc.process_payment(request.id)
    assert (await svc.get_payment_request(request.id)).status == PaymentRequestStatus.EXPIRED
    with pytest.raises(PaymentRequestExpiredException):
        await svc.process_payment(request.id)
    assert stub_processor.charges == []


@pytest.mark.asyncio
async def test_processor_error_marks_request_failed(uow_factory, seed, registry, stub_processor):
    customer = await seed.customer()
    await seed.gateway()
    stub_processor.error = PaymentGatewayError("card network down", gateway="stub")
    svc = PaymentService(uow_factory, registry)
    request = await svc.create_payment_request(customer_id=customer.id, gateway_slug="stub", amount=Decimal("10"))

    with pytest.raises(PaymentGatewayError):
        await svc.process_payment(request.id, card_token="pm_card")
    failed = await svc.get_payment_request(request.id)
    assert failed.status == PaymentRequestStatus.FAILED
    assert failed.error_message == "card network down"
    assert await svc.list_customer_transactions(customer.id) == []


@pytest.mark.asyncio
async def test_declined_and_pending_results(uow_factory, seed, registry, stub_processor):
    customer = await seed.customer()
    await seed.gateway()
    svc = PaymentService(uow_factory, registry)

    stub_processor.result = PaymentResult(success=False, status="failed", message="Card declined")
    declined = await svc.process_payment(
        (await svc.create_payment_request(customer_id=customer.id, gateway_slug="stub", amount=Decimal("10"))).id
    )
    assert declined.status == PaymentRequestStatus.FAILED
    assert declined.error_message == "Card declined"

    stub_processor.result = PaymentResult(success=False, status="pending", redirect_url="https://pay.example.com/r")
    pending = await svc.process_payment(
        (await svc.create_payment_request(customer_id=customer.id, gateway_slug="stub", amount=Decimal("10"))).id
    )
    assert pending.status == PaymentRequestStatus.PENDING
    assert pending.payment_url == "https://pay.example.com/r"
    assert pending.transaction_id is None


@pytest.mark.asyncio
async def test_request_validation(uow_factory, seed, registry):
    customer = await seed.customer()
    await seed.gateway(slug="stub", active=False)
    svc = PaymentService(uow_factory, registry)

    with pytest.raises(InvalidAmountException):
        await svc.create_payment_request(customer_id=customer.id, gateway_slug="stub", amount=Decimal("-1"))
    with pytest.raises(GatewayInactiveException):
        await svc.create_payment_request(customer_id=customer.id, gateway_slug="stub", amount=Decimal("1"))


@pytest.mark.asyncio
async def test_refunds_never_exceed_original(uow_factory, seed, registry, stub_processor):
    customer = await seed.customer()
    await seed.gateway()
    svc = PaymentService(uow_factory, registry)
    original = await _paid_transaction(svc, customer.id)

    refund = await svc.process_refund(original.id, Decimal("30"), reason="partial", staff_id=3)
    assert refund.amount == Decimal("-30")
    assert refund.refund_of_id == original.id

    with pytest.raises(RefundExceedsRemainingException):
        await svc.process_refund(original.id, Decimal("25"))
    assert (await svc.get_transaction(original.id)).refunded_amount == Decimal("30")

    await svc.process_refund(original.id, Decimal("20"), via_gateway=True)
    final = await svc.get_transaction(original.id)
    assert final.refunded_amount == Decimal("50")
    assert final.status == TransactionStatus.REFUNDED
    assert stub_processor.refunds == [("ch_1", Decimal("20"), "USD")]


@pytest.mark.asyncio
async def test_gateway_refund_requires_support(uow_factory, seed, registry):
    customer = await seed.customer()
    await seed.gateway(supports_refund=False)
    svc = PaymentService(uow_factory, registry)
    original = await _paid_transaction(svc, customer.id)

    with pytest.raises(RefundNotSupportedException):
        await svc.process_refund(original.id, Decimal("5"), via_gateway=True)
    assert (await svc.get_transaction(original.id)).refunded_amount == Decimal("0")


@pytest.mark.asyncio
async def test_subscription_lifecycle(uow_factory, seed, registry, stub_processor):
    customer = await seed.customer()
    await seed.gateway()
    await seed.gateway(slug="manual", supports_recurring=False)
    svc = PaymentService(uow_factory, registry)

    subscription = await svc.create_subscription(customer_id=customer.id, gateway_slug="stub", amount=Decimal("20"))
    assert subscription.gateway_sub_id == "sub_1"

    at_period_end = await svc.cancel_subscription(subscription.id)
    assert at_period_end.cancel_at_period_end is True
    assert at_period_end.status.value == "active"

    cancelled = await svc.cancel_subscription(subscription.id, immediately=True)
    assert cancelled.status.value == "cancelled"
    assert stub_processor.cancelled == ["sub_1", "sub_1"]
    with pytest.raises(InvalidStateTransitionException):
        await svc.cancel_subscription(subscription.id, immediately=True)

    with pytest.raises(RecurringNotSupportedException):
        await svc.create_subscription(customer_id=customer.id, gateway_slug="manual", amount=Decimal("20"))


@pytest.mark.asyncio
async def test_inbound_gateway_webhook_is_verified_and_logged(uow_factory, seed, registry, stub_processor):
    await seed.gateway()
    svc = PaymentService(uow_factory, registry)
    payload = json.dumps({"type": "charge.succeeded", "id": "evt_1"}).encode()

    log = await svc.process_webhook("stub", payload, "sig")
    assert log.event_type == "charge.succeeded"
    assert log.status == "received"

    stub_processor.webhook_valid = False
    with pytest.raises(InvalidWebhookSignatureException):
        await svc.process_webhook("stub", payload, "bad")


@pytest.mark.asyncio
async def test_tokenize_card(uow_factory, seed, registry):
    await seed.gateway()
    svc = PaymentService(uow_factory, registry)
    card = CardDetails(number="4242424242424242", exp_month=12, exp_year=2030, cvc="123")

    assert await svc.tokenize_card("stub", card) == "tok_4242"


@pytest.mark.asyncio
async def test_saved_payment_methods_keep_a_single_default(uow_factory, seed, registry):
    customer = await seed.customer()
    other = await seed.customer(email="bob@example.com")
    svc = PaymentService(uow_factory, registry)

    visa = await svc.save_payment_method(
        customer.id, method_type="card", gateway="stripe", gateway_method_id="pm_1",
        last4="4242", brand="Visa", expiry_month=12, expiry_year=2099, is_default=True,
    )
    paypal = await svc.save_payment_method(customer.id, method_type="paypal", gateway="paypal", is_default=True)
    await svc.save_payment_method(other.id, method_type="card", gateway="stripe", last4="1111", is_default=True)

    methods = await svc.list_payment_methods(customer.id)
    assert [(m.id, m.is_default) for m in methods] == [(paypal.id, True), (visa.id, False)]
    assert visa.display_name == "Visa ending in 4242"
    assert paypal.display_name == "PayPal"

    chosen = await svc.set_default_payment_method(customer.id, visa.id)
    assert chosen.is_default
    assert [m.id for m in await svc.list_payment_methods(customer.id) if m.is_default] == [visa.id]
    # 其它客户的默认方式不受影响
    assert [m.is_default for m in await svc.list_payment_methods(other.id)] == [True]

    with pytest.raises(PaymentMethodNotFoundException):
        await svc.set_default_payment_method(other.id, visa.id)
    with pytest.raises(PaymentMethodNotFoundException):
        await svc.delete_payment_method(other.id, visa.id)
    with pytest.raises(CustomerNotFoundException):
        await svc.save_payment_method(999, method_type="card", gateway="stripe")

    await svc.delete_payment_method(customer.id, paypal.id)
    assert [m.id for m in await svc.list_payment_methods(customer.id)] == [visa.id]


@pytest.mark.asyncio
async def test_auto_payment_setup_is_upserted_per_customer(uow_factory, seed, registry):
    customer = await seed.customer()
    other = await seed.customer(email="bob@example.com")
    svc = PaymentService(uow_factory, registry)
    card = await svc.save_payment_method(customer.id, method_type="card", gateway="stripe", last4="4242")
    wire = await svc.save_payment_method(customer.id, method_type="bank_wire", gateway="manual")
    foreign = await svc.save_payment_method(other.id, method_type="card", gateway="stripe")

    assert await svc.get_auto_payment_config(customer.id) is None

    config = await svc.setup_auto_payment(customer.id, card.id)
    assert config.max_amount == Decimal("0")
    assert config.days_before == 3
    assert config.covers(Decimal("100000"))

    updated = await svc.setup_auto_payment(customer.id, wire.id, max_amount=Decimal("50"), days_before=5)
    assert updated.id == config.id
    assert updated.payment_method_id == wire.id
    assert updated.covers(Decimal("50")) and not updated.covers(Decimal("50.01"))

    stored = await svc.get_auto_payment_config(customer.id)
    assert (stored.payment_method_id, stored.max_amount, stored.days_before) == (wire.id, Decimal("50"), 5)

    with pytest.raises(PaymentMethodNotFoundException):
        await svc.setup_auto_payment(customer.id, foreign.id)
    with pytest.raises(StateConflictException):
        await svc.delete_payment_method(customer.id, wire.id)
    await svc.delete_payment_method(customer.id, card.id)


@pytest.mark.asyncio
async def test_auto_payment_rejects_expired_card(uow_factory, seed, registry):
    customer = await seed.customer()
    svc = PaymentService(uow_factory, registry)
    expired = await svc.save_payment_method(
        customer.id, method_type="card", gateway="stripe", last4="0005", expiry_month=1, expiry_year=2001
    )

    assert expired.is_expired()
    with pytest.raises(StateConflictException):
        await svc.setup_auto_payment(customer.id, expired.id)
    assert await svc.get_auto_payment_config(customer.id) is None
