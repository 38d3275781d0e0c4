from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from api.dependencies import ServiceContainer
from main import create_app


@pytest_asyncio.fixture
async def client(uow_factory, registry, scheduler):
    container = ServiceContainer(uow_factory, registry, scheduler=scheduler)
    app = create_app(container=container)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}
    assert resp.headers.get("X-Request-ID")


@pytest.mark.asyncio
async def test_cart_checkout_over_http(client, seed):
    customer = await seed.customer()
    product = await seed.product(setup_fee="10", monthly="20")
    await seed.coupon(code="SAVE5", coupon_type="fixed", amount="5")
    await seed.tax_rule(country="US", rate="10")

    resp = await client.post("/api/v1/carts", json={"customer_id": customer.id})
    assert resp.status_code == 201
    cart_id = resp.json()["data"]["cart_id"]

    resp = await client.post(
        f"/api/v1/carts/{cart_id}/items", json={"product_id": product.id, "quantity": 2, "billing_cycle": "monthly"}
    )
    assert resp.status_code == 201
    resp = await client.post(f"/api/v1/carts/{cart_id}/coupon", json={"code": " SAVE5 "})
    assert resp.status_code == 200

    summary = (await client.get(f"/api/v1/carts/{cart_id}")).json()["data"]
    assert Decimal(summary["subtotal"]) == Decimal("60")
    assert Decimal(summary["total"]) == Decimal("60.50")

    resp = await client.post("/api/v1/orders", json={"customer_id": customer.id, "cart_id": cart_id})
    assert resp.status_code == 201
    order = resp.json()["data"]
    assert order["status"] == "pending"
    assert Decimal(order["total"]) == Decimal("60.50")

    resp = await client.get(f"/api/v1/orders/number/{order['order_number']}")
    assert resp.json()["data"]["id"] == order["id"]


@pytest.mark.asyncio
async def test_not_found_uses_error_envelope(client):
    resp = await client.get("/api/v1/carts/999")

    assert resp.status_code == 404
    body = resp.json()
    assert body["data"] is None
    assert body["error"]["type"] == "CartNotFound"
    assert body["error"]["details"] == {"id": "999"}


@pytest.mark.asyncio
async def test_request_validation_error(client):
    resp = await client.post("/api/v1/orders", json={"customer_id": 1})
    assert resp.status_code == 422
    assert resp.json()["error"] is not None


@pytest.mark.asyncio
async def test_credit_and_tax_preview(client, seed):
    customer = await seed.customer()
    await seed.tax_rule(country="GB", rate="20", inclusive=True)

    resp = await client.post(
        f"/api/v1/payments/customers/{customer.id}/credit", json={"amount": "25.00", "reason": "goodwill"}
    )
    assert resp.status_code == 201
    assert Decimal(resp.json()["data"]["balance_after"]) == Decimal("25")

    history = (await client.get(f"/api/v1/payments/customers/{customer.id}/credit")).json()["data"]
    assert len(history) == 1

    preview = (await client.get("/api/v1/tax/preview", params={"country": "GB", "amount": "120"})).json()["data"]
    assert Decimal(preview["tax"]) == Decimal("20")
    assert preview["inclusive"] is True


@pytest.mark.asyncio
async def test_adhoc_invoice_lookup_and_refund_over_http(client, seed):
    customer = await seed.customer()

    resp = await client.post(
        f"/api/v1/customers/{customer.id}/invoices",
        json={"items": [{"description": "Setup assistance", "unit_price": "40"}]},
    )
    assert resp.status_code == 201
    invoice = resp.json()["data"]
    assert Decimal(invoice["total"]) == Decimal("40")
    assert invoice["items"][0]["item_type"] == "custom"

    by_number = (await client.get(f"/api/v1/invoices/number/{invoice['invoice_number']}")).json()["data"]
    assert by_number["id"] == invoice["id"]
    unpaid = (await client.get(f"/api/v1/customers/{customer.id}/invoices/unpaid")).json()["data"]
    assert [i["id"] for i in unpaid] == [invoice["id"]]

    resp = await client.post(f"/api/v1/invoices/{invoice['id']}/refund", json={"amount": "10"})
    assert resp.status_code == 409

    await client.post(f"/api/v1/invoices/{invoice['id']}/payments", json={"amount": "40"})
    resp = await client.post(f"/api/v1/invoices/{invoice['id']}/refund", json={"amount": "40"})
    assert resp.status_code == 200
    paid = (await client.get(f"/api/v1/customers/{customer.id}/invoices", params={"status": "refunded"})).json()
    assert [i["id"] for i in paid["data"]] == [invoice["id"]]


@pytest.mark.asyncio
async def test_payment_methods_over_http(client, seed):
    customer = await seed.customer()
    base = f"/api/v1/payments/customers/{customer.id}"

    assert (await client.get(f"{base}/auto-payment")).json()["data"] is None
    resp = await client.post(
        f"{base}/methods",
        json={"method_type": "card", "gateway": "stripe", "last4": "4242", "brand": "Visa", "is_default": True},
    )
    assert resp.status_code == 201
    method = resp.json()["data"]
    assert method["display_name"] == "Visa ending in 4242"

    resp = await client.put(f"{base}/auto-payment", json={"payment_method_id": method["id"], "max_amount": "75"})
    assert resp.status_code == 200
    assert Decimal(resp.json()["data"]["max_amount"]) == Decimal("75")

    resp = await client.delete(f"{base}/methods/{method['id'] + 100}")
    assert resp.status_code == 404
    assert resp.json()["error"]["type"] == "PaymentMethodNotFound"
