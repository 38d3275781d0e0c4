import threading

import pytest

from infrastructure.tasks import celery_app
from infrastructure.tasks.tasks.notifications import send_email
from infrastructure.tasks.utils.dispatcher import TaskDispatcher
from infrastructure.webhooks import CeleryWebhookScheduler


class _FakeApp:
    def __init__(self):
        self.sent = []
        self.threads = []

    def send_task(self, name, args=None, kwargs=None):
        self.sent.append((name, kwargs))
        self.threads.append(threading.get_ident())


def test_dispatcher_sends_tasks_by_name():
    app = _FakeApp()
    dispatcher = TaskDispatcher(app)

    dispatcher.enqueue_email(to="a@example.com", subject="Hi", body="text")

    assert app.sent == [
        ("notifications.send_email", {"to": "a@example.com", "subject": "Hi", "body": "text", "template": None})
    ]


@pytest.mark.asyncio
async def test_celery_scheduler_enqueues_delivery():
    app = _FakeApp()
    scheduler = CeleryWebhookScheduler(TaskDispatcher(app))

    await scheduler.schedule(3, "invoice.paid", '{"event":"invoice.paid"}')

    assert app.sent == [
        ("webhooks.deliver", {"webhook_id": 3, "event_type": "invoice.paid", "body": '{"event":"invoice.paid"}'})
    ]
    # broker 调用不占用事件循环线程
    assert app.threads[0] != threading.get_ident()


def test_periodic_jobs_and_routes_are_registered():
    schedule = celery_app.conf.beat_schedule
    assert {entry["task"] for entry in schedule.values()} == {"carts.cleanup_expired", "invoices.mark_overdue"}
    assert celery_app.conf.task_routes["webhooks.*"] == {"queue": "webhooks"}
    assert celery_app.conf.task_always_eager is True


def test_send_email_task_runs_eagerly():
    result = send_email.apply(kwargs={"to": "a@example.com", "subject": "Hi", "body": "text"})
    assert result.successful()
