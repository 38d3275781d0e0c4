"""通知应用服务 - 站内通知 + 按偏好分发到邮件 / Webhook"""
from __future__ import annotations

import asyncio
from typing import Callable, List, Optional

from application.ports.webhook_scheduler import EmailQueue
from application.services.webhook_service import WebhookService
from core.logging_config import get_logger
from domain.common.exceptions import NotificationNotFoundException
from domain.common.timeutil import utc_now
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.notification.entity import Notification, NotificationPreference

logger = get_logger(__name__)


class NotificationService:

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        email_queue: Optional[EmailQueue] = None,
        webhooks: Optional[WebhookService] = None,
    ):
        self._uow_factory = uow_factory
        self._email_queue = email_queue
        self._webhooks = webhooks

    async def send_notification(
        self,
        customer_id: int,
        notification_type: str,
        title: str,
        message: str,
        link: Optional[str] = None,
    ) -> Notification:
        async with self._uow_factory() as uow:
            notification = await uow.notification_repository.create(
                Notification(
                    id=None,
                    customer_id=customer_id,
                    notification_type=notification_type,
                    title=title,
                    message=message,
                    link=link,
                    created_at=utc_now(),
                )
            )
            preference = await uow.notification_repository.get_preference(customer_id, notification_type)
            customer = await uow.customer_repository.get_by_id(customer_id)

        channels = ["in_app"]
        if preference is not None and preference.email and self._email_queue is not None:
            if customer is not None and customer.email:
                await asyncio.to_thread(
                    self._email_queue.enqueue_email,
                    to=customer.email,
                    subject=title,
                    body=message,
                    template=notification_type,
                )
                channels.append("email")
            else:
                logger.warning("notification_email_skipped", customer_id=customer_id, reason="no_email")
        if preference is not None and preference.webhook and self._webhooks is not None:
            await self._webhooks.trigger_webhooks(
                f"notification.{notification_type}",
                {
                    "notification_id": notification.id,
                    "customer_id": customer_id,
                    "title": title,
                    "message": message,
                    "link": link,
                },
            )
            channels.append("webhook")

        logger.info(
            "notification_sent",
            notification_id=notification.id,
            customer_id=customer_id,
            notification_type=notification_type,
            channels=channels,
        )
        return notification

    async def set_preference(
        self,
        customer_id: int,
        notification_type: str,
        *,
        email: bool = True,
        webhook: bool = False,
    ) -> NotificationPreference:
        async with self._uow_factory() as uow:
            return await uow.notification_repository.save_preference(
                NotificationPreference(
                    id=None,
                    customer_id=customer_id,
                    notification_type=notification_type,
                    email=email,
                    webhook=webhook,
                )
            )

    async def list_unread(self, customer_id: int, limit: int = 50) -> List[Notification]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.notification_repository.list_unread(customer_id, limit)

    async def mark_read(self, notification_id: int, customer_id: int) -> Notification:
        """只能标记本人的通知；他人的通知按不存在处理"""
        async with self._uow_factory() as uow:
            notification = await uow.notification_repository.get_by_id(notification_id)
            if notification is None or notification.customer_id != customer_id:
                raise NotificationNotFoundException(notification_id)
            notification.mark_read()
            return await uow.notification_repository.update(notification)

    async def mark_all_read(self, customer_id: int) -> int:
        async with self._uow_factory() as uow:
            count = await uow.notification_repository.mark_all_read(customer_id)
        logger.info("notifications_marked_read", customer_id=customer_id, count=count)
        return count
