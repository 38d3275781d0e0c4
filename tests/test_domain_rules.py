from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.cart.entity import Cart, CartItem, Coupon, CouponType
from domain.catalog.billing_cycle import BillingCycle, add_billing_period, is_known_cycle
from domain.common.exceptions import (
    DomainValidationException,
    InvalidStateTransitionException,
    RefundExceedsRemainingException,
)
from domain.order.entity import HostingService, ServiceStatus
from domain.payment.entity import PaymentRequest, PaymentRequestStatus, Transaction
from domain.tax.calculator import compute_tax
from domain.tax.entity import TaxRule
from domain.webhook.signing import sign_payload, verify_signature


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def test_quarterly_period_advances_three_months():
    assert add_billing_period(_utc(2024, 1, 15), "quarterly") == _utc(2024, 4, 15)


def test_month_end_overflow_clamps_to_last_day():
    assert add_billing_period(_utc(2024, 1, 31), "monthly") == _utc(2024, 2, 29)
    assert add_billing_period(_utc(2023, 1, 31), "monthly") == _utc(2023, 2, 28)


def test_unknown_cycle_falls_back_to_monthly():
    assert not is_known_cycle("fortnightly")
    assert add_billing_period(_utc(2024, 3, 10), "fortnightly") == _utc(2024, 4, 10)


def test_cycle_aliases():
    assert BillingCycle.parse("Semi-Annually") is BillingCycle.SEMI_ANNUALLY
    assert BillingCycle.parse("yearly") is BillingCycle.ANNUALLY
    assert BillingCycle.parse("") is None


def test_inclusive_tax_is_extracted_from_amount():
    rule = TaxRule(id=1, name="VAT", country="de", rate=Decimal("10"), is_inclusive=True)
    breakdown = compute_tax(Decimal("110"), [rule])
    assert breakdown.tax == Decimal("10.00")
    assert breakdown.inclusive is True


def test_additive_tax_is_added_on_top():
    rule = TaxRule(id=1, name="Sales", country="US", rate=Decimal("10"))
    assert compute_tax(Decimal("100"), [rule]).tax == Decimal("10.00")


def test_matching_rule_rates_are_summed():
    rules = [
        TaxRule(id=1, name="Federal", country="CA", rate=Decimal("5")),
        TaxRule(id=2, name="Provincial", country="CA", state="ON", rate=Decimal("8")),
    ]
    breakdown = compute_tax(Decimal("100"), rules)
    assert breakdown.rate == Decimal("13")
    assert breakdown.tax == Decimal("13.00")


def test_no_rules_or_non_positive_amount_yields_zero_tax():
    rule = TaxRule(id=1, name="Sales", country="US", rate=Decimal("10"))
    assert compute_tax(Decimal("100"), []).tax == Decimal("0")
    assert compute_tax(Decimal("0"), [rule]).tax == Decimal("0")


def test_cart_item_total_is_derived():
    item = CartItem(
        id=None, cart_id=1, product_id=1, product_name="VPS", billing_cycle="monthly",
        quantity=2, setup_fee=Decimal("10"), recurring_fee=Decimal("20"),
    )
    item.apply_discount(Decimal("5"))
    assert item.subtotal == Decimal("60")
    assert item.total == Decimal("55")
    item.apply_discount(Decimal("500"))
    assert item.total == Decimal("0")


def test_coupon_discount_kinds():
    item = CartItem(
        id=None, cart_id=1, product_id=7, product_name="VPS", billing_cycle="monthly",
        quantity=2, setup_fee=Decimal("10"), recurring_fee=Decimal("20"),
    )
    percent = Coupon(id=1, code="P10", coupon_type=CouponType.PERCENTAGE, amount=Decimal("10"))
    free_setup = Coupon(id=2, code="FS", coupon_type=CouponType.FREE_SETUP, amount=Decimal("0"))
    override = Coupon(id=3, code="OV", coupon_type=CouponType.OVERRIDE, amount=Decimal("25"))
    other_product = Coupon(id=4, code="X", coupon_type=CouponType.FIXED, amount=Decimal("5"), product_ids=[99])

    assert percent.discount_for(item) == Decimal("6.00")
    assert free_setup.discount_for(item) == Decimal("20")
    assert override.discount_for(item) == Decimal("10")
    assert other_product.discount_for(item) == Decimal("0")


def test_coupon_validity():
    now = datetime.now(timezone.utc)
    exhausted = Coupon(id=1, code="A", coupon_type="fixed", amount=Decimal("1"), max_uses=2, current_uses=2)
    expired = Coupon(id=2, code="B", coupon_type="fixed", amount=Decimal("1"), expires_at=now - timedelta(days=1))
    assert exhausted.invalid_reason(now) == "usage_exhausted"
    assert expired.invalid_reason(now) == "expired"


def test_cart_must_have_exactly_one_owner():
    with pytest.raises(DomainValidationException):
        Cart(id=None)
    with pytest.raises(DomainValidationException):
        Cart(id=None, customer_id=1, session_id="abc")


def test_refund_cannot_exceed_remaining():
    txn = Transaction(
        id=1, customer_id=1, transaction_type="payment", status="completed", currency="USD", amount=Decimal("50")
    )
    txn.register_refund(Decimal("30"))
    with pytest.raises(RefundExceedsRemainingException):
        txn.register_refund(Decimal("25"))
    assert txn.refunded_amount == Decimal("30")
    txn.register_refund(Decimal("20"))
    assert txn.status.value == "refunded"


def test_payment_request_expiry_and_transitions():
    opened = _utc(2024, 1, 1)
    request = PaymentRequest.open(customer_id=1, gateway_id=1, amount=Decimal("10"), currency="USD",
                                  ttl=timedelta(hours=1), now=opened)
    assert not request.is_expired(opened + timedelta(minutes=30))
    assert request.is_expired(opened + timedelta(hours=2))
    request.mark_processing()
    with pytest.raises(InvalidStateTransitionException):
        request.mark_expired()
    request.mark_settled(PaymentRequestStatus.COMPLETED, transaction_id=5)
    assert request.transaction_id == 5


def test_service_lifecycle():
    service = HostingService(
        id=1, customer_id=1, order_id=1, product_id=1, product_name="VPS",
        billing_cycle="monthly", amount=Decimal("20"), status=ServiceStatus.ACTIVE,
        next_due_date=_utc(2024, 1, 31),
    )
    service.suspend("abuse")
    service.unsuspend()
    assert service.renew(now=_utc(2024, 1, 10)) == _utc(2024, 2, 29)
    service.terminate()
    with pytest.raises(InvalidStateTransitionException):
        service.unsuspend()


def test_hmac_signature_roundtrip():
    signature = sign_payload(b'{"event":"x"}', "secret")
    assert len(signature) == 64
    assert verify_signature(b'{"event":"x"}', signature, "secret")
    assert not verify_signature(b'{"event":"y"}', signature, "secret")
    assert not verify_signature(b'{"event":"x"}', signature, "")
