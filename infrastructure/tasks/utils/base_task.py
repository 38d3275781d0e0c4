"""Shared Celery plumbing: structured task logging and the async bridge."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from celery import Task

from core.config import settings
from core.logging_config import get_logger
from infrastructure.database import build_engine, build_session_factory
from infrastructure.unit_of_work import sqlalchemy_uow_factory

logger = get_logger(__name__)

T = TypeVar("T")


class BaseTask(Task):
    """Logs task outcome. Arguments are not logged: webhook and email bodies carry customer data."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.error(
            "celery_task_failure",
            task_id=task_id,
            task_name=self.name,
            retries=self.request.retries,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.warning("celery_task_retry", task_id=task_id, task_name=self.name, error=str(exc))
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        logger.info("celery_task_success", task_id=task_id, task_name=self.name, result=retval)
        super().on_success(retval, task_id, args, kwargs)


def run_with_uow(job: Callable[[Callable[..., Any]], Awaitable[T]]) -> T:
    """
    在独立事件循环中执行异步任务

    每次调用创建并释放自己的引擎，连接池不会跨事件循环复用。
    """

    async def _run() -> T:
        engine = build_engine(settings.database.url)
        try:
            return await job(sqlalchemy_uow_factory(build_session_factory(engine)))
        finally:
            await engine.dispose()

    return asyncio.run(_run())
