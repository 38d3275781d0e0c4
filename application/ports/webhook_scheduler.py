"""
Outbound webhook scheduling port.

TriggerWebhooks hands one job per subscribed config to a scheduler and returns
immediately; the scheduler decides where the delivery runs (in-process worker
pool or Celery worker).
"""
from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable

from domain.common.events import DomainEvent


@runtime_checkable
class WebhookScheduler(Protocol):

    async def schedule(self, webhook_id: int, event_type: str, body: str) -> None: ...


@runtime_checkable
class EmailQueue(Protocol):
    """邮件投递交给外部发送方，核心只负责入队"""

    def enqueue_email(self, *, to: str, subject: str, body: str, template: str | None = None) -> None: ...


@runtime_checkable
class EventPublisher(Protocol):
    """业务事务提交后发布领域事件（出站 Webhook）"""

    async def publish(self, events: Iterable[DomainEvent]) -> None: ...
