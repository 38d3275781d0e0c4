import asyncio

import httpx
import pytest

from application.services.webhook_service import WebhookDeliveryService, WebhookService, build_event_body
from domain.common.exceptions import DomainValidationException, WebhookNotFoundException
from domain.order.events import OrderCancelled
from domain.webhook.entity import DeliveryStatus
from domain.webhook.signing import sign_payload, verify_signature
from infrastructure.webhooks import AsyncioWebhookScheduler, CeleryWebhookScheduler, build_webhook_scheduler
from core.config import WebhookDispatchSettings


class _Sleeps:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


async def _hook(uow_factory, scheduler, **kwargs):
    webhooks = WebhookService(uow_factory, scheduler)
    options = {"name": "ops", "url": "https://hooks.example.com/in", "events": ["order.created"]}
    options.update(kwargs)
    return webhooks, await webhooks.create_webhook(**options)


@pytest.mark.asyncio
async def test_failing_endpoint_is_retried_with_quadratic_backoff(uow_factory, scheduler):
    webhooks, hook = await _hook(uow_factory, scheduler, retry_attempts=3)
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, text="upstream exploded")

    sleeps = _Sleeps()
    delivery_service = WebhookDeliveryService(uow_factory, transport=httpx.MockTransport(handler), sleep=sleeps)
    delivery = await delivery_service.deliver(hook.id, "order.created", build_event_body("order.created", {"id": 1}))

    assert len(calls) == 3
    assert sleeps.calls == [1.0, 4.0]
    assert sum(sleeps.calls) >= 5
    assert delivery.status == DeliveryStatus.FAILED
    assert delivery.attempts == 3
    assert delivery.response_code == 500
    assert delivery.error_message == "HTTP 500"

    stored = await webhooks.get_webhook(hook.id)
    assert stored.failure_count == 1
    history = await webhooks.list_deliveries(hook.id)
    assert [(d.status, d.attempts) for d in history] == [(DeliveryStatus.FAILED, 3)]


@pytest.mark.asyncio
async def test_successful_delivery_is_signed(uow_factory, scheduler):
    webhooks, hook = await _hook(uow_factory, scheduler, secret="s3cret", headers={"X-Tenant": "acme"})
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, text="ok")

    body = build_event_body("order.created", {"order_id": 42})
    delivery_service = WebhookDeliveryService(uow_factory, transport=httpx.MockTransport(handler), sleep=_Sleeps())
    delivery = await delivery_service.deliver(hook.id, "order.created", body)

    assert delivery.status == DeliveryStatus.SUCCESS
    assert delivery.attempts == 1
    assert delivery.delivered_at is not None
    request = seen[0]
    assert request.content == body.encode()
    assert request.headers["X-Webhook-Event"] == "order.created"
    assert request.headers["X-Webhook-Delivery"] == str(delivery.id)
    assert request.headers["X-Tenant"] == "acme"
    assert request.headers["X-Webhook-Signature"] == sign_payload(body, "s3cret")
    assert verify_signature(request.content, request.headers["X-Webhook-Signature"], "s3cret")
    assert (await webhooks.get_webhook(hook.id)).last_triggered is not None


@pytest.mark.asyncio
async def test_recovers_on_second_attempt(uow_factory, scheduler):
    _, hook = await _hook(uow_factory, scheduler, retry_attempts=3)
    responses = iter([httpx.Response(503), httpx.Response(204)])
    sleeps = _Sleeps()
    delivery_service = WebhookDeliveryService(
        uow_factory, transport=httpx.MockTransport(lambda request: next(responses)), sleep=sleeps
    )

    delivery = await delivery_service.deliver(hook.id, "order.created", "{}")

    assert delivery.status == DeliveryStatus.SUCCESS
    assert delivery.attempts == 2
    assert sleeps.calls == [1.0]


@pytest.mark.asyncio
async def test_transport_errors_count_as_failed_attempts(uow_factory, scheduler):
    webhooks, hook = await _hook(uow_factory, scheduler, retry_attempts=1)

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    sleeps = _Sleeps()
    delivery_service = WebhookDeliveryService(uow_factory, transport=httpx.MockTransport(handler), sleep=sleeps)
    delivery = await delivery_service.deliver(hook.id, "order.created", "{}")

    assert delivery.status == DeliveryStatus.FAILED
    assert delivery.response_code is None
    assert delivery.error_message.startswith("ConnectError")
    assert sleeps.calls == []


@pytest.mark.asyncio
async def test_unknown_webhook_is_skipped(uow_factory):
    delivery_service = WebhookDeliveryService(uow_factory, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    assert await delivery_service.deliver(999, "order.created", "{}") is None


@pytest.mark.asyncio
async def test_trigger_schedules_only_subscribed_configs(uow_factory, scheduler):
    webhooks, hook = await _hook(uow_factory, scheduler, events=["order.created"])
    await webhooks.create_webhook(name="all", url="https://hooks.example.com/all", events=["*"])
    await webhooks.create_webhook(name="none", url="https://hooks.example.com/none", events=[])

    assert await webhooks.trigger_webhooks("order.created", {"id": 1}) == 2
    assert await webhooks.trigger_webhooks("invoice.paid", {"id": 1}) == 1
    assert len(scheduler.jobs) == 3
    first_body = scheduler.jobs[0][2]
    assert scheduler.jobs[1][2] == first_body


@pytest.mark.asyncio
async def test_webhook_config_validation_and_delete(uow_factory, scheduler):
    webhooks, hook = await _hook(uow_factory, scheduler)
    with pytest.raises(DomainValidationException):
        await webhooks.create_webhook(name="bad", url="ftp://example.com", events=["*"])

    await webhooks.delete_webhook(hook.id)
    with pytest.raises(WebhookNotFoundException):
        await webhooks.get_webhook(hook.id)


class _BrokenScheduler:
    async def schedule(self, webhook_id, event_type, body):
        raise RuntimeError("queue unavailable")


@pytest.mark.asyncio
async def test_publish_failures_do_not_propagate(uow_factory):
    webhooks = WebhookService(uow_factory, _BrokenScheduler())
    await webhooks.create_webhook(name="all", url="https://hooks.example.com/all", events=["*"])

    await webhooks.publish([OrderCancelled(order_id=1, customer_id=1, reason="test")])


class _SlowDelivery:
    def __init__(self):
        self.active = 0
        self.peak = 0
        self.delivered = []

    async def deliver(self, webhook_id, event_type, body):
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01)
        self.active -= 1
        if webhook_id == 0:
            raise RuntimeError("boom")
        self.delivered.append(webhook_id)


@pytest.mark.asyncio
async def test_asyncio_scheduler_bounds_concurrency():
    delivery = _SlowDelivery()
    scheduler = AsyncioWebhookScheduler(delivery, workers=2, queue_size=4)

    for webhook_id in range(8):
        await scheduler.schedule(webhook_id, "order.created", "{}")
    await scheduler.stop()

    assert delivery.peak <= 2
    assert sorted(delivery.delivered) == list(range(1, 8))
    assert not scheduler.running


@pytest.mark.asyncio
async def test_scheduler_selection(uow_factory):
    delivery = WebhookDeliveryService(uow_factory)
    assert isinstance(build_webhook_scheduler(delivery, WebhookDispatchSettings()), AsyncioWebhookScheduler)
    assert isinstance(
        build_webhook_scheduler(delivery, WebhookDispatchSettings(dispatcher="celery")), CeleryWebhookScheduler
    )
