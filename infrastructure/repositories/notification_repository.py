"""
通知仓储实现
"""
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import NotificationNotFoundException
from domain.common.timeutil import utc_now
from domain.notification.entity import Notification, NotificationPreference
from domain.notification.repository import NotificationRepository
from infrastructure.models.notification import NotificationModel, NotificationPreferenceModel


class SQLAlchemyNotificationRepository(NotificationRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: NotificationModel) -> Notification:
        return Notification(
            id=model.id,
            customer_id=model.customer_id,
            notification_type=model.notification_type,
            title=model.title,
            message=model.message,
            link=model.link,
            read=model.read,
            read_at=model.read_at,
            created_at=model.created_at,
        )

    async def create(self, notification: Notification) -> Notification:
        model = NotificationModel(
            customer_id=notification.customer_id,
            notification_type=notification.notification_type,
            title=notification.title,
            message=notification.message,
            link=notification.link,
            read=notification.read,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def get_by_id(self, notification_id: int) -> Optional[Notification]:
        model = await self.session.get(NotificationModel, notification_id)
        return self._to_entity(model) if model else None

    async def update(self, notification: Notification) -> Notification:
        model = await self.session.get(NotificationModel, notification.id)
        if model is None:
            raise NotificationNotFoundException(notification.id)
        model.read = notification.read
        model.read_at = notification.read_at
        await self.session.flush()
        return self._to_entity(model)

    async def list_unread(self, customer_id: int, limit: int = 50) -> List[Notification]:
        result = await self.session.execute(
            select(NotificationModel)
            .where(NotificationModel.customer_id == customer_id, NotificationModel.read.is_(False))
            .order_by(NotificationModel.id.desc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def mark_all_read(self, customer_id: int) -> int:
        result = await self.session.execute(
            update(NotificationModel)
            .where(NotificationModel.customer_id == customer_id, NotificationModel.read.is_(False))
            .values(read=True, read_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def get_preference(self, customer_id: int, notification_type: str) -> Optional[NotificationPreference]:
        result = await self.session.execute(
            select(NotificationPreferenceModel).where(
                NotificationPreferenceModel.customer_id == customer_id,
                NotificationPreferenceModel.notification_type == notification_type,
            )
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return NotificationPreference(
            id=model.id,
            customer_id=model.customer_id,
            notification_type=model.notification_type,
            email=model.email,
            webhook=model.webhook,
        )

    async def save_preference(self, preference: NotificationPreference) -> NotificationPreference:
        result = await self.session.execute(
            select(NotificationPreferenceModel).where(
                NotificationPreferenceModel.customer_id == preference.customer_id,
                NotificationPreferenceModel.notification_type == preference.notification_type,
            )
        )
        model = result.scalar_one_or_none()
        if model is None:
            model = NotificationPreferenceModel(
                customer_id=preference.customer_id,
                notification_type=preference.notification_type,
            )
            self.session.add(model)
        model.email = preference.email
        model.webhook = preference.webhook
        await self.session.flush()
        preference.id = model.id
        return preference
