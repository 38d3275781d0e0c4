from decimal import Decimal

import pytest

from application.services.cart_service import CartService
from application.services.invoice_service import InvoiceService
from application.services.order_service import OrderService
from domain.catalog.billing_cycle import add_billing_period
from domain.common.exceptions import (
    CustomerNotFoundException,
    DomainValidationException,
    InvalidStateTransitionException,
    InvoiceNotFoundException,
    RefundExceedsRemainingException,
)
from domain.invoice.entity import InvoiceLine, InvoiceStatus


async def _paid_order_invoice(uow_factory, seed):
    """月付产品一件：安装费 10 + 月费 20，税 10%，分两笔付清 33"""
    customer = await seed.customer()
    product = await seed.product(setup_fee="10", monthly="20")
    await seed.tax_rule(country="US", rate="10")
    carts = CartService(uow_factory)
    orders = OrderService(uow_factory)
    invoices = InvoiceService(uow_factory)
    cart = await carts.get_or_create_cart(customer_id=customer.id)
    await carts.add_item(cart.id, product_id=product.id)
    order = await orders.create_order(customer.id, cart.id)
    invoice = await invoices.create_from_order(order.id)
    await invoices.record_payment(invoice.id, Decimal("10"))
    await invoices.record_payment(invoice.id, Decimal("23"))
    return customer, order, invoices, invoice


@pytest.mark.asyncio
async def test_adhoc_invoice_taxes_only_taxable_lines(uow_factory, seed):
    customer = await seed.customer()
    await seed.tax_rule(country="US", rate="10")
    invoices = InvoiceService(uow_factory)

    invoice = await invoices.create_invoice(
        customer.id,
        [
            InvoiceLine(description="Migration", unit_price=Decimal("50"), quantity=2, discount=Decimal("20")),
            InvoiceLine(description="Domain transfer", unit_price=Decimal("12"), taxable=False, item_type="domain"),
        ],
        due_days=7,
    )

    assert invoice.subtotal == Decimal("112")
    assert invoice.discount == Decimal("20")
    assert invoice.tax_amount == Decimal("8")
    assert invoice.total == Decimal("100")
    assert invoice.balance == invoice.total
    assert invoice.status == InvoiceStatus.UNPAID
    assert invoice.order_id is None
    assert [i.item_type for i in invoice.items] == ["service", "domain"]
    assert round((invoice.due_date - invoice.created_at).total_seconds() / 86400) == 7


@pytest.mark.asyncio
async def test_adhoc_invoice_validation(uow_factory, seed):
    customer = await seed.customer()
    invoices = InvoiceService(uow_factory)

    with pytest.raises(DomainValidationException):
        await invoices.create_invoice(customer.id, [])
    with pytest.raises(DomainValidationException):
        InvoiceLine(description="Bad", unit_price=Decimal("5"), discount=Decimal("6"))
    with pytest.raises(CustomerNotFoundException):
        await invoices.create_invoice(999, [InvoiceLine(description="x", unit_price=Decimal("1"))])


@pytest.mark.asyncio
async def test_renewal_invoice_covers_next_billing_period(uow_factory, seed):
    customer = await seed.customer()
    product = await seed.product(setup_fee="10", monthly="20")
    await seed.tax_rule(country="US", rate="10")
    carts = CartService(uow_factory)
    orders = OrderService(uow_factory)
    invoices = InvoiceService(uow_factory)
    cart = await carts.get_or_create_cart(customer_id=customer.id)
    await carts.add_item(cart.id, product_id=product.id, billing_cycle="monthly")
    order = await orders.activate_order((await orders.create_order(customer.id, cart.id)).id)
    service = await orders.get_service(order.items[0].service_id)

    invoice = await invoices.create_service_renewal_invoice(service.id)

    assert invoice.customer_id == customer.id
    assert invoice.currency == order.currency
    assert invoice.subtotal == Decimal("20")
    assert invoice.tax_amount == Decimal("2")
    assert invoice.total == Decimal("22")
    assert invoice.due_date == service.next_due_date
    (item,) = invoice.items
    assert item.item_type == "renewal"
    assert item.service_id == service.id
    assert item.period_start == service.next_due_date
    assert item.period_end == add_billing_period(service.next_due_date, "monthly")
    assert item.description.startswith(service.product_name)

    await orders.terminate_service(service.id)
    with pytest.raises(InvalidStateTransitionException):
        await invoices.create_service_renewal_invoice(service.id)


@pytest.mark.asyncio
async def test_lookup_by_number_and_customer_listings(uow_factory, seed):
    customer = await seed.customer()
    other = await seed.customer(email="bob@example.com")
    invoices = InvoiceService(uow_factory)

    first = await invoices.create_invoice(customer.id, [InvoiceLine(description="a", unit_price=Decimal("5"))])
    second = await invoices.create_invoice(customer.id, [InvoiceLine(description="b", unit_price=Decimal("7"))])
    cancelled = await invoices.create_invoice(customer.id, [InvoiceLine(description="c", unit_price=Decimal("9"))])
    await invoices.cancel_invoice(cancelled.id)
    await invoices.record_payment(second.id, Decimal("7"))
    await invoices.create_invoice(other.id, [InvoiceLine(description="d", unit_price=Decimal("1"))])

    found = await invoices.get_invoice_by_number(first.invoice_number)
    assert found.id == first.id
    with pytest.raises(InvoiceNotFoundException):
        await invoices.get_invoice_by_number("INV-00000000-MISSING")

    assert [i.id for i in await invoices.list_invoices(customer.id)] == [cancelled.id, second.id, first.id]
    assert [i.id for i in await invoices.list_invoices(customer.id, InvoiceStatus.PAID)] == [second.id]
    assert len(await invoices.list_invoices(customer.id, skip=1, limit=1)) == 1
    assert [i.id for i in await invoices.get_unpaid_invoices(customer.id)] == [first.id]


@pytest.mark.asyncio
async def test_partial_then_full_invoice_refund(uow_factory, seed):
    customer, _, invoices, invoice = await _paid_order_invoice(uow_factory, seed)

    partial = await invoices.refund_invoice(invoice.id, Decimal("5"), reason="goodwill", staff_id=7)
    assert [r.amount for r in partial] == [Decimal("-5")]
    assert (await invoices.get_invoice(invoice.id)).status == InvoiceStatus.PAID

    with pytest.raises(RefundExceedsRemainingException):
        await invoices.refund_invoice(invoice.id, Decimal("29"))

    rest = await invoices.refund_invoice(invoice.id, Decimal("28"))
    # 从最近一笔付款开始分摊
    assert [r.amount for r in rest] == [Decimal("-18"), Decimal("-10")]
    assert (await invoices.get_invoice(invoice.id)).status == InvoiceStatus.REFUNDED

    with pytest.raises(InvalidStateTransitionException):
        await invoices.refund_invoice(invoice.id, Decimal("1"))


@pytest.mark.asyncio
async def test_refund_requires_a_paid_invoice(uow_factory, seed):
    customer = await seed.customer()
    invoices = InvoiceService(uow_factory)
    invoice = await invoices.create_invoice(customer.id, [InvoiceLine(description="a", unit_price=Decimal("5"))])

    with pytest.raises(InvalidStateTransitionException):
        await invoices.refund_invoice(invoice.id, Decimal("1"))
    with pytest.raises(InvoiceNotFoundException):
        await invoices.refund_invoice(999, Decimal("1"))
