"""
Webhook schedulers.

AsyncioWebhookScheduler keeps deliveries in-process: a bounded queue feeds a
fixed pool of worker tasks, so at most ``workers`` deliveries run at once and
``schedule`` waits when the queue is full.

CeleryWebhookScheduler hands each delivery to the ``webhooks.deliver`` task.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional

from application.services.webhook_service import WebhookDeliveryService
from core.config import WebhookDispatchSettings
from core.logging_config import get_logger
from infrastructure.tasks.utils.dispatcher import TaskDispatcher

logger = get_logger(__name__)


@dataclass(frozen=True)
class _DeliveryJob:
    webhook_id: int
    event_type: str
    body: str


class AsyncioWebhookScheduler:
    """进程内有界队列 + 固定数量的投递协程"""

    def __init__(self, delivery: WebhookDeliveryService, *, workers: int = 8, queue_size: int = 1000) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._delivery = delivery
        self._workers = workers
        self._queue: asyncio.Queue[Optional[_DeliveryJob]] = asyncio.Queue(maxsize=queue_size)
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(index), name=f"webhook-worker-{index}") for index in range(self._workers)
        ]
        logger.info("webhook_scheduler_started", workers=self._workers, queue_size=self._queue.maxsize)

    async def schedule(self, webhook_id: int, event_type: str, body: str) -> None:
        if not self._tasks:
            self.start()
        await self._queue.put(_DeliveryJob(webhook_id, event_type, body))

    async def join(self) -> None:
        """等待已入队的投递全部完成"""
        await self._queue.join()

    async def stop(self, *, drain: bool = True) -> None:
        if not self._tasks:
            return
        if drain:
            await self._queue.join()
        for _ in self._tasks:
            await self._queue.put(None)
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("webhook_scheduler_stopped")

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                if job is None:
                    return
                await self._delivery.deliver(job.webhook_id, job.event_type, job.body)
            except Exception:
                logger.exception(
                    "webhook_worker_error",
                    worker=index,
                    webhook_id=job.webhook_id if job else None,
                    event_type=job.event_type if job else None,
                )
            finally:
                self._queue.task_done()


class CeleryWebhookScheduler:
    """把投递交给 Celery worker"""

    def __init__(self, dispatcher: Optional[TaskDispatcher] = None) -> None:
        self._dispatcher = dispatcher or TaskDispatcher()

    async def schedule(self, webhook_id: int, event_type: str, body: str) -> None:
        # send_task 会同步连接 broker，放到线程里执行
        await asyncio.to_thread(self._dispatcher.deliver_webhook, webhook_id, event_type, body)


def build_webhook_scheduler(delivery: WebhookDeliveryService, config: WebhookDispatchSettings):
    if config.dispatcher == "celery":
        return CeleryWebhookScheduler()
    return AsyncioWebhookScheduler(delivery, workers=config.max_concurrency, queue_size=config.queue_size)
