import json
from datetime import timedelta
from decimal import Decimal

import pytest

from application.services.cart_service import CartService
from application.services.invoice_service import InvoiceService
from application.services.order_service import OrderService
from application.services.tax_service import TaxService
from application.services.webhook_service import WebhookService
from domain.catalog.billing_cycle import add_billing_period
from domain.common.exceptions import (
    CartEmptyException,
    CartNotFoundException,
    CurrencyMismatchException,
    InvalidBillingCycleException,
    InvalidCouponException,
    InvalidStateTransitionException,
)
from domain.common.timeutil import utc_now
from domain.order.entity import OrderStatus, ServiceStatus
from infrastructure.models import CouponModel


async def _checkout_fixture(seed):
    customer = await seed.customer()
    product = await seed.product(setup_fee="10", monthly="20", quarterly="55")
    await seed.coupon(code="SAVE5", coupon_type="fixed", amount="5")
    await seed.tax_rule(country="US", rate="10")
    return customer, product


@pytest.mark.asyncio
async def test_cart_summary_applies_coupon_and_tax(uow_factory, seed):
    customer, product = await _checkout_fixture(seed)
    carts = CartService(uow_factory)

    cart = await carts.get_or_create_cart(customer_id=customer.id)
    item = await carts.add_item(cart.id, product_id=product.id, quantity=2, billing_cycle="monthly")
    assert item.total == Decimal("60")

    await carts.apply_coupon(cart.id, "SAVE5")
    summary = await carts.get_cart_summary(cart.id)

    assert summary.subtotal == Decimal("60")
    assert summary.total_discount == Decimal("5")
    assert summary.tax == Decimal("5.50")
    assert summary.total == Decimal("60.50")
    assert summary.coupon_code == "SAVE5"


@pytest.mark.asyncio
async def test_adding_same_line_merges_quantity(uow_factory, seed):
    customer, product = await _checkout_fixture(seed)
    carts = CartService(uow_factory)
    cart = await carts.get_or_create_cart(customer_id=customer.id)

    await carts.add_item(cart.id, product_id=product.id, quantity=1)
    await carts.add_item(cart.id, product_id=product.id, quantity=2)
    await carts.add_item(cart.id, product_id=product.id, quantity=1, billing_cycle="quarterly")

    reloaded = await carts.get_cart(cart.id)
    assert sorted((i.billing_cycle, i.quantity) for i in reloaded.items) == [("monthly", 3), ("quarterly", 1)]


@pytest.mark.asyncio
async def test_disabled_cycle_and_bad_coupon_are_rejected(uow_factory, seed):
    customer, product = await _checkout_fixture(seed)
    carts = CartService(uow_factory)
    cart = await carts.get_or_create_cart(customer_id=customer.id)

    with pytest.raises(InvalidBillingCycleException):
        await carts.add_item(cart.id, product_id=product.id, billing_cycle="annually")
    with pytest.raises(InvalidBillingCycleException):
        await carts.add_item(cart.id, product_id=product.id, billing_cycle="weekly")
    with pytest.raises(InvalidCouponException):
        await carts.apply_coupon(cart.id, "NOPE")


@pytest.mark.asyncio
async def test_update_item_to_zero_removes_it(uow_factory, seed):
    customer, product = await _checkout_fixture(seed)
    carts = CartService(uow_factory)
    cart = await carts.get_or_create_cart(customer_id=customer.id)
    item = await carts.add_item(cart.id, product_id=product.id)

    assert await carts.update_item(cart.id, item.id, 0) is None
    assert (await carts.get_cart(cart.id)).is_empty()


@pytest.mark.asyncio
async def test_guest_cart_merges_into_customer_cart(uow_factory, seed):
    customer, product = await _checkout_fixture(seed)
    carts = CartService(uow_factory)
    guest = await carts.get_or_create_cart(session_id="guest-1")
    await carts.add_item(guest.id, product_id=product.id, quantity=2)
    own = await carts.get_or_create_cart(customer_id=customer.id)
    await carts.add_item(own.id, product_id=product.id, quantity=1)

    merged = await carts.merge_cart("guest-1", customer.id)

    assert merged.id == own.id
    assert [i.quantity for i in merged.items] == [3]
    with pytest.raises(CartNotFoundException):
        await carts.get_cart(guest.id)


@pytest.mark.asyncio
async def test_create_order_snapshots_cart_and_clears_it(uow_factory, seed, scheduler):
    customer, product = await _checkout_fixture(seed)
    webhooks = WebhookService(uow_factory, scheduler)
    await webhooks.create_webhook(name="orders", url="https://hooks.example.com/orders", events=["order.created"])
    carts = CartService(uow_factory)
    orders = OrderService(uow_factory, publisher=webhooks)

    cart = await carts.get_or_create_cart(customer_id=customer.id)
    await carts.add_item(cart.id, product_id=product.id, quantity=2)
    await carts.apply_coupon(cart.id, "SAVE5")

    order = await orders.create_order(customer.id, cart.id, ip_address="203.0.113.9")

    assert order.status == OrderStatus.PENDING
    assert order.subtotal == Decimal("60")
    assert order.discount == Decimal("5")
    assert order.tax_amount == Decimal("5.50")
    assert order.total == Decimal("60.50")
    assert order.total == order.subtotal - order.discount + order.tax_amount
    assert len(order.items) == 1 and order.items[0].quantity == 2

    with pytest.raises(CartNotFoundException):
        await carts.get_cart(cart.id)
    assert (await carts.get_or_create_cart(customer_id=customer.id)).is_empty()

    stored = await orders.get_order_by_number(order.order_number)
    assert stored.items[0].total == Decimal("55")

    async with uow_factory(readonly=True) as uow:
        coupon = await uow.coupon_repository.get_by_code("SAVE5")
    assert coupon.current_uses == 1

    assert len(scheduler.jobs) == 1
    _, event_type, body = scheduler.jobs[0]
    assert event_type == "order.created"
    assert json.loads(body)["data"]["order_number"] == order.order_number


@pytest.mark.asyncio
async def test_checkout_rejects_empty_or_foreign_cart(uow_factory, seed):
    customer, product = await _checkout_fixture(seed)
    other = await seed.customer(email="bob@example.com")
    carts = CartService(uow_factory)
    orders = OrderService(uow_factory)
    cart = await carts.get_or_create_cart(customer_id=customer.id)

    with pytest.raises(CartEmptyException):
        await orders.create_order(customer.id, cart.id)
    await carts.add_item(cart.id, product_id=product.id)
    with pytest.raises(CartNotFoundException):
        await orders.create_order(other.id, cart.id)


@pytest.mark.asyncio
async def test_activation_provisions_one_service_per_item(uow_factory, seed):
    customer, product = await _checkout_fixture(seed)
    carts = CartService(uow_factory)
    orders = OrderService(uow_factory)
    cart = await carts.get_or_create_cart(customer_id=customer.id)
    await carts.add_item(cart.id, product_id=product.id, billing_cycle="monthly")
    await carts.add_item(cart.id, product_id=product.id, billing_cycle="quarterly", domain="example.org")
    order = await orders.create_order(customer.id, cart.id)

    activated = await orders.activate_order(order.id)

    assert activated.status == OrderStatus.ACTIVE
    assert all(item.service_id is not None for item in activated.items)
    services = await orders.list_customer_services(customer.id)
    assert len(services) == 2
    assert {s.billing_cycle for s in services} == {"monthly", "quarterly"}
    with pytest.raises(InvalidStateTransitionException):
        await orders.activate_order(order.id)
    with pytest.raises(InvalidStateTransitionException):
        await orders.cancel_order(order.id)

    suspended = await orders.suspend_service(services[0].id, reason="overdue")
    assert suspended.status.value == "suspended"
    terminated = await orders.terminate_service(services[0].id)
    assert terminated.termination_date is not None


@pytest.mark.asyncio
async def test_invoice_from_order_and_offline_payment(uow_factory, seed):
    customer, product = await _checkout_fixture(seed)
    carts = CartService(uow_factory)
    orders = OrderService(uow_factory)
    invoices = InvoiceService(uow_factory)
    cart = await carts.get_or_create_cart(customer_id=customer.id)
    await carts.add_item(cart.id, product_id=product.id)
    order = await orders.create_order(customer.id, cart.id)

    invoice = await invoices.create_from_order(order.id)
    assert invoice.total == order.total
    assert invoice.is_payable

    await invoices.record_payment(invoice.id, Decimal("10"), gateway_ref="wire-1")
    partial = await invoices.get_invoice(invoice.id)
    assert partial.balance == invoice.total - Decimal("10")

    await invoices.record_payment(invoice.id, partial.balance)
    paid = await invoices.get_invoice(invoice.id)
    assert paid.status.value == "paid"
    assert paid.balance == Decimal("0")


@pytest.mark.asyncio
async def test_tax_service_by_customer_and_region(uow_factory, seed):
    customer = await seed.customer(country="DE", state="")
    await seed.tax_rule(country="DE", rate="10", inclusive=True)
    taxes = TaxService(uow_factory)

    assert await taxes.calculate_for_customer(customer.id, Decimal("110")) == Decimal("10.00")
    breakdown = await taxes.calculate_for_region("us", None, Decimal("100"))
    assert breakdown.tax == Decimal("0")


@pytest.mark.asyncio
async def test_checkout_rejects_coupon_exhausted_by_an_earlier_order(uow_factory, seed):
    customer, product = await _checkout_fixture(seed)
    other = await seed.customer(email="bob@example.com")
    limited = await seed.coupon(code="ONCE", coupon_type="fixed", amount="5", max_uses=1)
    carts = CartService(uow_factory)
    orders = OrderService(uow_factory)

    first = await carts.get_or_create_cart(customer_id=customer.id)
    await carts.add_item(first.id, product_id=product.id)
    await carts.apply_coupon(first.id, "ONCE")
    second = await carts.get_or_create_cart(customer_id=other.id)
    await carts.add_item(second.id, product_id=product.id)
    await carts.apply_coupon(second.id, "ONCE")

    order = await orders.create_order(customer.id, first.id)
    assert order.discount == Decimal("5")

    with pytest.raises(InvalidCouponException) as excinfo:
        await orders.create_order(other.id, second.id)
    assert excinfo.value.details["reason"] == "usage_exhausted"

    async with uow_factory() as uow:
        coupon = await uow.coupon_repository.get_by_id(limited.id)
        assert coupon.current_uses == 1
        assert await uow.coupon_repository.increment_usage(limited.id) is False
    # 失败的结账整体回滚，购物车保留
    assert not (await carts.get_cart(second.id)).is_empty()


@pytest.mark.asyncio
async def test_checkout_rejects_coupon_expired_after_it_was_applied(uow_factory, seed):
    customer, product = await _checkout_fixture(seed)
    carts = CartService(uow_factory)
    orders = OrderService(uow_factory)
    cart = await carts.get_or_create_cart(customer_id=customer.id)
    await carts.add_item(cart.id, product_id=product.id)
    await carts.apply_coupon(cart.id, "SAVE5")

    async with uow_factory(readonly=True) as uow:
        coupon = await uow.coupon_repository.get_by_code("SAVE5")
    await seed.update(CouponModel, coupon.id, expires_at=utc_now() - timedelta(days=1))

    with pytest.raises(InvalidCouponException) as excinfo:
        await orders.create_order(customer.id, cart.id)
    assert excinfo.value.details["reason"] == "expired"

    async with uow_factory(readonly=True) as uow:
        assert (await uow.coupon_repository.get_by_id(coupon.id)).current_uses == 0


@pytest.mark.asyncio
async def test_activated_services_enter_the_due_sweep(uow_factory, seed):
    customer, product = await _checkout_fixture(seed)
    carts = CartService(uow_factory)
    orders = OrderService(uow_factory)
    cart = await carts.get_or_create_cart(customer_id=customer.id)
    await carts.add_item(cart.id, product_id=product.id, billing_cycle="monthly")
    await carts.add_item(cart.id, product_id=product.id, billing_cycle="quarterly")
    order = await orders.create_order(customer.id, cart.id)

    await orders.activate_order(order.id)

    services = await orders.list_customer_services(customer.id)
    assert {s.status for s in services} == {ServiceStatus.ACTIVE}
    assert await orders.get_due_services() == []
    due = await orders.get_due_services(before=utc_now() + timedelta(days=400))
    assert sorted(s.id for s in due) == sorted(s.id for s in services)
    # 按到期日升序：月付先于季付
    assert [s.billing_cycle for s in due] == ["monthly", "quarterly"]

    suspended = await orders.suspend_service(services[0].id, reason="overdue")
    assert [s.id for s in await orders.get_due_services(before=utc_now() + timedelta(days=400))] == [services[1].id]
    assert (await orders.unsuspend_service(suspended.id)).status == ServiceStatus.ACTIVE


@pytest.mark.asyncio
async def test_renew_service_extends_from_due_date_or_from_now(uow_factory, seed):
    customer, product = await _checkout_fixture(seed)
    carts = CartService(uow_factory)
    orders = OrderService(uow_factory)
    cart = await carts.get_or_create_cart(customer_id=customer.id)
    await carts.add_item(cart.id, product_id=product.id, billing_cycle="monthly")
    order = await orders.activate_order((await orders.create_order(customer.id, cart.id)).id)
    service = await orders.get_service(order.items[0].service_id)
    first_due = service.next_due_date

    early = await orders.renew_service(service.id, now=first_due - timedelta(days=5))
    assert early.next_due_date == add_billing_period(first_due, "monthly")

    late_now = early.next_due_date + timedelta(days=10)
    late = await orders.renew_service(service.id, now=late_now)
    assert late.next_due_date == add_billing_period(late_now, "monthly")
    assert (await orders.get_service(service.id)).next_due_date == late.next_due_date

    await orders.terminate_service(service.id)
    with pytest.raises(InvalidStateTransitionException):
        await orders.renew_service(service.id)


@pytest.mark.asyncio
async def test_order_and_service_listings_filter_by_status(uow_factory, seed):
    customer, product = await _checkout_fixture(seed)
    other = await seed.customer(email="bob@example.com")
    carts = CartService(uow_factory)
    orders = OrderService(uow_factory)

    async def _place(owner_id):
        cart = await carts.get_or_create_cart(customer_id=owner_id)
        await carts.add_item(cart.id, product_id=product.id)
        return await orders.create_order(owner_id, cart.id)

    active = await orders.activate_order((await _place(customer.id)).id)
    cancelled = await orders.cancel_order((await _place(customer.id)).id, reason="changed mind")
    pending = await _place(other.id)

    assert [o.id for o in await orders.list_customer_orders(customer.id)] == [cancelled.id, active.id]
    assert [o.id for o in await orders.list_customer_orders(customer.id, OrderStatus.ACTIVE)] == [active.id]
    assert [o.id for o in await orders.list_all_orders(OrderStatus.PENDING)] == [pending.id]
    assert len(await orders.list_all_orders()) == 3
    assert len(await orders.list_all_orders(skip=1, limit=1)) == 1

    service_id = active.items[0].service_id
    await orders.suspend_service(service_id)
    assert [s.id for s in await orders.list_customer_services(customer.id, ServiceStatus.SUSPENDED)] == [service_id]
    assert await orders.list_customer_services(customer.id, ServiceStatus.ACTIVE) == []


@pytest.mark.asyncio
async def test_config_options_add_setup_and_recurring_fees(uow_factory, seed):
    customer, product = await _checkout_fixture(seed)
    option, (small, large) = await seed.config_option(
        product.id, name="Memory", sub_options=[("1GB", "0", "0"), ("4GB", "5", "8")]
    )
    carts = CartService(uow_factory)
    cart = await carts.get_or_create_cart(customer_id=customer.id)

    item = await carts.add_item(cart.id, product_id=product.id, quantity=2, config_options={option.id: large.id})
    assert item.setup_fee == Decimal("15")
    assert item.recurring_fee == Decimal("28")
    assert item.total == Decimal("86")
    assert item.config_options == {option.id: large.id}

    basic = await carts.add_item(cart.id, product_id=product.id, config_options={option.id: small.id})
    assert basic.total == Decimal("30")
    # 未知子选项不计费
    unknown = await carts.add_item(cart.id, product_id=product.id, config_options={option.id: 9999})
    assert unknown.total == Decimal("30")

    summary = await carts.get_cart_summary(cart.id)
    assert summary.subtotal == Decimal("146")


@pytest.mark.asyncio
async def test_merge_rejects_guest_cart_in_another_currency(uow_factory, seed):
    customer, product = await _checkout_fixture(seed)
    euro_product = await seed.product(name="EU Hosting", monthly="18", currency="EUR")
    carts = CartService(uow_factory)
    own = await carts.get_or_create_cart(customer_id=customer.id)
    await carts.add_item(own.id, product_id=product.id)
    guest = await carts.get_or_create_cart(session_id="guest-eur", currency="EUR")
    await carts.add_item(guest.id, product_id=euro_product.id)

    with pytest.raises(CurrencyMismatchException):
        await carts.merge_cart("guest-eur", customer.id)

    assert [i.product_id for i in (await carts.get_cart(own.id)).items] == [product.id]
    assert [i.product_id for i in (await carts.get_cart(guest.id)).items] == [euro_product.id]
