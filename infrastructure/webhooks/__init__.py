"""Outbound webhook dispatch backends."""
from .scheduler import AsyncioWebhookScheduler, CeleryWebhookScheduler, build_webhook_scheduler

__all__ = ["AsyncioWebhookScheduler", "CeleryWebhookScheduler", "build_webhook_scheduler"]
