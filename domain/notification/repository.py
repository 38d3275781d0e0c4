"""通知仓储接口"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Notification, NotificationPreference


class NotificationRepository(ABC):

    @abstractmethod
    async def create(self, notification: Notification) -> Notification:
        pass

    @abstractmethod
    async def get_by_id(self, notification_id: int) -> Optional[Notification]:
        pass

    @abstractmethod
    async def update(self, notification: Notification) -> Notification:
        pass

    @abstractmethod
    async def list_unread(self, customer_id: int, limit: int = 50) -> List[Notification]:
        pass

    @abstractmethod
    async def mark_all_read(self, customer_id: int) -> int:
        pass

    @abstractmethod
    async def get_preference(self, customer_id: int, notification_type: str) -> Optional[NotificationPreference]:
        pass

    @abstractmethod
    async def save_preference(self, preference: NotificationPreference) -> NotificationPreference:
        pass
