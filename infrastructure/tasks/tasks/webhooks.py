"""Outbound webhook delivery task"""
from __future__ import annotations

from celery import shared_task

from application.services.webhook_service import WebhookDeliveryService
from core.config import settings
from core.logging_config import get_logger

from ..utils.base_task import BaseTask, run_with_uow

logger = get_logger(__name__)


@shared_task(name="webhooks.deliver", bind=True, base=BaseTask)
def deliver_webhook(self, webhook_id: int, event_type: str, body: str) -> dict:
    """单次投递；重试与退避在投递服务内部完成，这里不再叠加 Celery 重试"""

    async def _job(uow_factory):
        service = WebhookDeliveryService(
            uow_factory,
            header_prefix=settings.webhooks.header_prefix,
            user_agent=settings.webhooks.user_agent,
        )
        return await service.deliver(webhook_id, event_type, body)

    delivery = run_with_uow(_job)
    if delivery is None:
        return {"webhook_id": webhook_id, "status": "skipped"}
    return {"webhook_id": webhook_id, "delivery_id": delivery.id, "status": delivery.status.value}
