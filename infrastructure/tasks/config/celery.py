"""Celery application configuration"""
from __future__ import annotations

from celery import Celery
from kombu import Queue

from core.config import settings
from core.logging_config import get_logger

from .beat import CELERY_BEAT_SCHEDULE

# Task modules are discovered via this tuple so new packages only need to be
# listed here rather than altering the runtime imports scattered elsewhere.
CELERY_IMPORTS = (
    "infrastructure.tasks.tasks",
)


celery_app = Celery("hosting_billing")

celery_app.conf.update(
    # Connection endpoints fall back to the shared redis url.
    broker_url=settings.celery.broker_url or settings.redis.url,
    result_backend=settings.celery.result_backend or settings.redis.url,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Acknowledge after the work is done so a lost worker re-queues the job.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue=settings.celery.default_queue,
    task_default_retry_delay=5,
    task_queues=(
        Queue("webhooks"),
        Queue("default"),
        Queue("low"),
    ),
    task_routes={
        "webhooks.*": {"queue": "webhooks"},
        "notifications.*": {"queue": "default"},
        "carts.*": {"queue": "low"},
        "invoices.*": {"queue": "low"},
    },
    beat_schedule=CELERY_BEAT_SCHEDULE,
)

celery_app.conf.imports = CELERY_IMPORTS

always_eager = settings.celery.always_eager
if always_eager is None:
    always_eager = settings.ENVIRONMENT.lower() in {"development", "dev", "test", "testing"}
celery_app.conf.task_always_eager = always_eager

celery_app.autodiscover_tasks(packages=CELERY_IMPORTS)


logger = get_logger(__name__)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info("celery_configured", broker=sender.conf.broker_url, eager=sender.conf.task_always_eager)
