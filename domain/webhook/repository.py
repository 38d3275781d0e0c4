"""Webhook 仓储接口"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import WebhookConfig, WebhookDelivery


class WebhookRepository(ABC):

    @abstractmethod
    async def create(self, webhook: WebhookConfig) -> WebhookConfig:
        pass

    @abstractmethod
    async def get_by_id(self, webhook_id: int) -> Optional[WebhookConfig]:
        pass

    @abstractmethod
    async def list_active(self) -> List[WebhookConfig]:
        pass

    @abstractmethod
    async def list_by_customer(self, customer_id: Optional[int]) -> List[WebhookConfig]:
        pass

    @abstractmethod
    async def delete(self, webhook_id: int) -> bool:
        pass

    @abstractmethod
    async def touch_last_triggered(self, webhook_id: int, at: datetime) -> None:
        pass

    @abstractmethod
    async def increment_failure_count(self, webhook_id: int) -> None:
        """原子自增，避免并发投递互相覆盖"""
        pass


class WebhookDeliveryRepository(ABC):

    @abstractmethod
    async def create(self, delivery: WebhookDelivery) -> WebhookDelivery:
        pass

    @abstractmethod
    async def update(self, delivery: WebhookDelivery) -> WebhookDelivery:
        pass

    @abstractmethod
    async def get_by_id(self, delivery_id: int) -> Optional[WebhookDelivery]:
        pass

    @abstractmethod
    async def list_by_webhook(self, webhook_id: int, limit: int = 50) -> List[WebhookDelivery]:
        pass
