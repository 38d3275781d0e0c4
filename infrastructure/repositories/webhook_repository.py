"""
出站 Webhook 仓储实现
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import WebhookNotFoundException
from domain.webhook.entity import WebhookConfig, WebhookDelivery
from domain.webhook.repository import WebhookDeliveryRepository, WebhookRepository
from infrastructure.models.webhook import WebhookConfigModel, WebhookDeliveryModel


class SQLAlchemyWebhookRepository(WebhookRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: WebhookConfigModel) -> WebhookConfig:
        return WebhookConfig(
            id=model.id,
            name=model.name,
            url=model.url,
            secret=model.secret,
            customer_id=model.customer_id,
            events=list(model.events or []),
            headers=dict(model.headers or {}),
            active=model.active,
            verify_ssl=model.verify_ssl,
            timeout=model.timeout,
            retry_attempts=model.retry_attempts,
            last_triggered=model.last_triggered,
            failure_count=model.failure_count,
            created_at=model.created_at,
        )

    async def create(self, webhook: WebhookConfig) -> WebhookConfig:
        model = WebhookConfigModel(
            customer_id=webhook.customer_id,
            name=webhook.name,
            url=webhook.url,
            secret=webhook.secret,
            events=list(webhook.events),
            headers=dict(webhook.headers),
            active=webhook.active,
            verify_ssl=webhook.verify_ssl,
            timeout=webhook.timeout,
            retry_attempts=webhook.retry_attempts,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def get_by_id(self, webhook_id: int) -> Optional[WebhookConfig]:
        model = await self.session.get(WebhookConfigModel, webhook_id)
        return self._to_entity(model) if model else None

    async def list_active(self) -> List[WebhookConfig]:
        result = await self.session.execute(
            select(WebhookConfigModel).where(WebhookConfigModel.active.is_(True)).order_by(WebhookConfigModel.id)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_by_customer(self, customer_id: Optional[int]) -> List[WebhookConfig]:
        if customer_id is None:
            criterion = WebhookConfigModel.customer_id.is_(None)
        else:
            criterion = WebhookConfigModel.customer_id == customer_id
        result = await self.session.execute(
            select(WebhookConfigModel).where(criterion).order_by(WebhookConfigModel.id)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def delete(self, webhook_id: int) -> bool:
        await self.session.execute(delete(WebhookDeliveryModel).where(WebhookDeliveryModel.webhook_id == webhook_id))
        result = await self.session.execute(delete(WebhookConfigModel).where(WebhookConfigModel.id == webhook_id))
        return bool(result.rowcount)

    async def touch_last_triggered(self, webhook_id: int, at: datetime) -> None:
        await self.session.execute(
            update(WebhookConfigModel)
            .where(WebhookConfigModel.id == webhook_id)
            .values(last_triggered=at)
            .execution_options(synchronize_session=False)
        )

    async def increment_failure_count(self, webhook_id: int) -> None:
        await self.session.execute(
            update(WebhookConfigModel)
            .where(WebhookConfigModel.id == webhook_id)
            .values(failure_count=WebhookConfigModel.failure_count + 1)
            .execution_options(synchronize_session=False)
        )


class SQLAlchemyWebhookDeliveryRepository(WebhookDeliveryRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: WebhookDeliveryModel) -> WebhookDelivery:
        return WebhookDelivery(
            id=model.id,
            webhook_id=model.webhook_id,
            event_type=model.event_type,
            payload=model.payload,
            status=model.status,
            attempts=model.attempts,
            request_headers=dict(model.request_headers or {}),
            response_code=model.response_code,
            response_body=model.response_body,
            response_time_ms=model.response_time_ms,
            error_message=model.error_message,
            delivered_at=model.delivered_at,
            created_at=model.created_at,
        )

    def _apply(self, model: WebhookDeliveryModel, delivery: WebhookDelivery) -> None:
        model.status = delivery.status.value
        model.attempts = delivery.attempts
        model.request_headers = dict(delivery.request_headers)
        model.response_code = delivery.response_code
        model.response_body = delivery.response_body
        model.response_time_ms = delivery.response_time_ms
        model.error_message = delivery.error_message
        model.delivered_at = delivery.delivered_at

    async def create(self, delivery: WebhookDelivery) -> WebhookDelivery:
        model = WebhookDeliveryModel(
            webhook_id=delivery.webhook_id,
            event_type=delivery.event_type,
            payload=delivery.payload,
        )
        self._apply(model, delivery)
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def update(self, delivery: WebhookDelivery) -> WebhookDelivery:
        model = await self.session.get(WebhookDeliveryModel, delivery.id)
        if model is None:
            raise WebhookNotFoundException(delivery.webhook_id)
        self._apply(model, delivery)
        await self.session.flush()
        return self._to_entity(model)

    async def get_by_id(self, delivery_id: int) -> Optional[WebhookDelivery]:
        model = await self.session.get(WebhookDeliveryModel, delivery_id)
        return self._to_entity(model) if model else None

    async def list_by_webhook(self, webhook_id: int, limit: int = 50) -> List[WebhookDelivery]:
        result = await self.session.execute(
            select(WebhookDeliveryModel)
            .where(WebhookDeliveryModel.webhook_id == webhook_id)
            .order_by(WebhookDeliveryModel.id.desc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]
