"""Email related Celery tasks"""
from __future__ import annotations

from typing import Optional

from celery import shared_task

from core.logging_config import get_logger

from ..utils.base_task import BaseTask

logger = get_logger(__name__)


@shared_task(
    name="notifications.send_email",
    bind=True,
    base=BaseTask,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def send_email(self, to: str, subject: str, body: str, template: Optional[str] = None) -> None:
    """Hand an email to the outbound mail transport.

    The SMTP/ESP integration is deployed separately and consumes this queue;
    the billing core only records the hand-off.
    """
    logger.info("send_email", to=to, subject=subject, template=template, size=len(body))
