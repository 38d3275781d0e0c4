"""
出站 Webhook 应用服务

- WebhookService: 配置管理 + 事件触发（每个订阅配置一个投递任务，交给调度器后立即返回）
- WebhookDeliveryService: 单次投递，tenacity 控制重试，第 k 次失败后等待 k² 秒
"""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from application.ports.webhook_scheduler import WebhookScheduler
from core.logging_config import get_logger
from domain.common.events import DomainEvent
from domain.common.exceptions import WebhookNotFoundException
from domain.common.timeutil import utc_now
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.webhook.entity import WebhookConfig, WebhookDelivery
from domain.webhook.signing import sign_payload

logger = get_logger(__name__)

UowFactory = Callable[..., AbstractUnitOfWork]
Sleep = Callable[[float], Awaitable[None]]


def build_event_body(event_type: str, payload: Dict[str, Any]) -> str:
    """序列化一次，所有订阅方收到相同字节（签名也基于这份字节）"""
    return json.dumps(
        {"event": event_type, "timestamp": utc_now().isoformat(), "data": payload},
        default=str,
        separators=(",", ":"),
    )


def quadratic_backoff(retry_state) -> float:
    """第 k 次尝试失败后等待 k² 秒：1, 4, 9, ..."""
    return float(retry_state.attempt_number ** 2)


class WebhookAttemptFailed(Exception):
    """单次投递未得到 2xx，用于驱动重试"""

    def __init__(self, response_code: Optional[int], message: str):
        super().__init__(message)
        self.response_code = response_code


class WebhookService:

    def __init__(self, uow_factory: UowFactory, scheduler: WebhookScheduler):
        self._uow_factory = uow_factory
        self._scheduler = scheduler

    async def create_webhook(
        self,
        *,
        name: str,
        url: str,
        events: Iterable[str],
        customer_id: Optional[int] = None,
        secret: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: int = 30,
        retry_attempts: int = 3,
        verify_ssl: bool = True,
    ) -> WebhookConfig:
        webhook = WebhookConfig(
            id=None,
            name=name,
            url=url,
            secret=secret,
            customer_id=customer_id,
            events=[e.strip() for e in events if e and e.strip()],
            headers=dict(headers or {}),
            timeout=timeout,
            retry_attempts=retry_attempts,
            verify_ssl=verify_ssl,
            created_at=utc_now(),
        )
        async with self._uow_factory() as uow:
            created = await uow.webhook_repository.create(webhook)
        logger.info("webhook_created", webhook_id=created.id, customer_id=customer_id, events=created.events)
        return created

    async def list_webhooks(self, customer_id: Optional[int] = None) -> List[WebhookConfig]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.webhook_repository.list_by_customer(customer_id)

    async def get_webhook(self, webhook_id: int) -> WebhookConfig:
        async with self._uow_factory(readonly=True) as uow:
            webhook = await uow.webhook_repository.get_by_id(webhook_id)
        if webhook is None:
            raise WebhookNotFoundException(webhook_id)
        return webhook

    async def delete_webhook(self, webhook_id: int) -> None:
        async with self._uow_factory() as uow:
            if not await uow.webhook_repository.delete(webhook_id):
                raise WebhookNotFoundException(webhook_id)
        logger.info("webhook_deleted", webhook_id=webhook_id)

    async def list_deliveries(self, webhook_id: int, limit: int = 50) -> List[WebhookDelivery]:
        async with self._uow_factory(readonly=True) as uow:
            if await uow.webhook_repository.get_by_id(webhook_id) is None:
                raise WebhookNotFoundException(webhook_id)
            return await uow.webhook_delivery_repository.list_by_webhook(webhook_id, limit)

    async def trigger_webhooks(self, event_type: str, payload: Dict[str, Any]) -> int:
        """为每个订阅了该事件（或通配符）的启用配置调度一次投递，返回调度数量"""
        async with self._uow_factory(readonly=True) as uow:
            webhooks = await uow.webhook_repository.list_active()
        targets = [w for w in webhooks if w.is_subscribed(event_type)]
        if not targets:
            return 0
        body = build_event_body(event_type, payload)
        for webhook in targets:
            await self._scheduler.schedule(webhook.id, event_type, body)
        logger.info("webhooks_triggered", event_type=event_type, scheduled=len(targets))
        return len(targets)

    async def publish(self, events: Iterable[DomainEvent]) -> None:
        """提交后发布领域事件；触发失败只记录日志，不影响已提交的业务操作"""
        for event in events:
            try:
                await self.trigger_webhooks(event.event_type, event.to_payload())
            except Exception:
                logger.exception("webhook_publish_failed", event_type=event.event_type, event_id=event.event_id)


class WebhookDeliveryService:
    """执行单个 (webhook, event) 的投递与重试"""

    def __init__(
        self,
        uow_factory: UowFactory,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
        header_prefix: str = "X-Webhook",
        user_agent: str = "HostingBilling-Webhook/1.0",
    ):
        self._uow_factory = uow_factory
        self._transport = transport
        self._sleep = sleep
        self._header_prefix = header_prefix
        self._user_agent = user_agent

    def _build_headers(self, webhook: WebhookConfig, delivery: WebhookDelivery) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
            f"{self._header_prefix}-Event": delivery.event_type,
            f"{self._header_prefix}-Delivery": str(delivery.id),
        }
        if webhook.secret:
            headers[f"{self._header_prefix}-Signature"] = sign_payload(delivery.payload, webhook.secret)
        for key, value in webhook.headers.items():
            headers.setdefault(key, value)
        return headers

    async def _save(self, delivery: WebhookDelivery) -> None:
        async with self._uow_factory() as uow:
            await uow.webhook_delivery_repository.update(delivery)

    async def _attempt(self, client: httpx.AsyncClient, webhook: WebhookConfig, delivery: WebhookDelivery) -> None:
        started = time.perf_counter()
        response_code: Optional[int] = None
        response_body: Optional[str] = None
        error_message: Optional[str] = None
        try:
            response = await client.post(
                webhook.url,
                content=delivery.payload.encode("utf-8"),
                headers=delivery.request_headers,
            )
            response_code = response.status_code
            response_body = response.text
        except httpx.HTTPError as exc:
            error_message = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        succeeded = delivery.record_attempt(
            response_code=response_code,
            response_body=response_body,
            response_time_ms=elapsed_ms,
            error_message=error_message,
        )
        await self._save(delivery)
        if not succeeded:
            logger.warning(
                "webhook_attempt_failed",
                webhook_id=webhook.id,
                delivery_id=delivery.id,
                attempt=delivery.attempts,
                response_code=response_code,
                error=delivery.error_message,
            )
            raise WebhookAttemptFailed(response_code, delivery.error_message or "delivery failed")
        logger.info(
            "webhook_delivered",
            webhook_id=webhook.id,
            delivery_id=delivery.id,
            attempt=delivery.attempts,
            response_code=response_code,
            response_time_ms=elapsed_ms,
        )

    async def deliver(self, webhook_id: int, event_type: str, body: str) -> Optional[WebhookDelivery]:
        """投递一次事件；返回最终的投递记录（配置不存在或已停用时返回 None）"""
        async with self._uow_factory() as uow:
            webhook = await uow.webhook_repository.get_by_id(webhook_id)
            if webhook is None or not webhook.active:
                logger.warning("webhook_delivery_skipped", webhook_id=webhook_id, event_type=event_type)
                return None
            delivery = await uow.webhook_delivery_repository.create(
                WebhookDelivery(
                    id=None,
                    webhook_id=webhook_id,
                    event_type=event_type,
                    payload=body,
                    created_at=utc_now(),
                )
            )
            delivery.request_headers = self._build_headers(webhook, delivery)
            delivery = await uow.webhook_delivery_repository.update(delivery)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(webhook.retry_attempts),
            wait=quadratic_backoff,
            retry=retry_if_exception_type(WebhookAttemptFailed),
            sleep=self._sleep,
            reraise=True,
        )
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(float(webhook.timeout)),
            verify=webhook.verify_ssl,
            transport=self._transport,
        ) as client:
            try:
                async for attempt in retrying:
                    with attempt:
                        await self._attempt(client, webhook, delivery)
            except WebhookAttemptFailed:
                delivery.mark_failed()
                async with self._uow_factory() as uow:
                    await uow.webhook_delivery_repository.update(delivery)
                    await uow.webhook_repository.increment_failure_count(webhook_id)
                logger.error(
                    "webhook_delivery_exhausted",
                    webhook_id=webhook_id,
                    delivery_id=delivery.id,
                    attempts=delivery.attempts,
                )
                return delivery

        async with self._uow_factory() as uow:
            await uow.webhook_repository.touch_last_triggered(webhook_id, delivery.delivered_at or utc_now())
        return delivery
