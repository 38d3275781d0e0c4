"""Producer side of the Celery queues used by the billing core."""
from __future__ import annotations

from typing import Optional

from ..config.celery import celery_app


class TaskDispatcher:
    """Sends tasks by name so the web process never imports worker code.

    Satisfies the ``EmailQueue`` port and backs ``CeleryWebhookScheduler``.
    """

    def __init__(self, app=None) -> None:
        self._app = app or celery_app

    def deliver_webhook(self, webhook_id: int, event_type: str, body: str) -> None:
        self._app.send_task(
            "webhooks.deliver",
            kwargs={"webhook_id": webhook_id, "event_type": event_type, "body": body},
        )

    def enqueue_email(self, *, to: str, subject: str, body: str, template: Optional[str] = None) -> None:
        self._app.send_task(
            "notifications.send_email",
            kwargs={"to": to, "subject": subject, "body": body, "template": template},
        )
