import json
import threading

import pytest

from application.services.notification_service import NotificationService
from application.services.webhook_service import WebhookService
from domain.common.exceptions import NotificationNotFoundException


@pytest.mark.asyncio
async def test_notification_without_preference_is_in_app_only(uow_factory, seed, email_queue, scheduler):
    customer = await seed.customer()
    svc = NotificationService(uow_factory, email_queue=email_queue, webhooks=WebhookService(uow_factory, scheduler))

    notification = await svc.send_notification(customer.id, "invoice_created", "Invoice ready", "Your invoice is ready")

    assert notification.id is not None
    assert email_queue.sent == []
    assert scheduler.jobs == []
    assert [n.id for n in await svc.list_unread(customer.id)] == [notification.id]


@pytest.mark.asyncio
async def test_preferences_route_to_email_and_webhook(uow_factory, seed, email_queue, scheduler):
    customer = await seed.customer(email="carol@example.com")
    webhooks = WebhookService(uow_factory, scheduler)
    await webhooks.create_webhook(
        name="notify", url="https://hooks.example.com/n", events=["notification.service_suspended"]
    )
    svc = NotificationService(uow_factory, email_queue=email_queue, webhooks=webhooks)
    await svc.set_preference(customer.id, "service_suspended", email=True, webhook=True)

    await svc.send_notification(customer.id, "service_suspended", "Service suspended", "Overdue invoice", link="/s/1")

    assert email_queue.sent == [
        {"to": "carol@example.com", "subject": "Service suspended", "body": "Overdue invoice", "template": "service_suspended"}
    ]
    assert len(scheduler.jobs) == 1
    _, event_type, body = scheduler.jobs[0]
    assert event_type == "notification.service_suspended"
    assert json.loads(body)["data"]["link"] == "/s/1"


@pytest.mark.asyncio
async def test_mark_read(uow_factory, seed):
    customer = await seed.customer()
    svc = NotificationService(uow_factory)
    first = await svc.send_notification(customer.id, "general", "One", "1")
    await svc.send_notification(customer.id, "general", "Two", "2")

    read = await svc.mark_read(first.id, customer.id)
    assert read.read and read.read_at is not None
    assert len(await svc.list_unread(customer.id)) == 1
    assert await svc.mark_all_read(customer.id) == 1
    assert await svc.list_unread(customer.id) == []
    with pytest.raises(NotificationNotFoundException):
        await svc.mark_read(999, customer.id)


@pytest.mark.asyncio
async def test_mark_read_rejects_other_customers_notification(uow_factory, seed):
    owner = await seed.customer()
    other = await seed.customer(email="mallory@example.com")
    svc = NotificationService(uow_factory)
    notification = await svc.send_notification(owner.id, "general", "Private", "for owner only")

    with pytest.raises(NotificationNotFoundException):
        await svc.mark_read(notification.id, other.id)

    assert [n.id for n in await svc.list_unread(owner.id)] == [notification.id]


class _BlockingEmailQueue:
    """模拟同步 broker 调用，记录执行线程"""

    def __init__(self):
        self.threads = []

    def enqueue_email(self, *, to, subject, body, template=None):
        self.threads.append(threading.get_ident())


@pytest.mark.asyncio
async def test_email_enqueue_runs_off_the_event_loop_thread(uow_factory, seed):
    customer = await seed.customer(email="dave@example.com")
    queue = _BlockingEmailQueue()
    svc = NotificationService(uow_factory, email_queue=queue)
    await svc.set_preference(customer.id, "invoice_created", email=True)

    await svc.send_notification(customer.id, "invoice_created", "Invoice", "ready")

    assert len(queue.threads) == 1
    assert queue.threads[0] != threading.get_ident()
