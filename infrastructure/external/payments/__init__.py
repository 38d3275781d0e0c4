"""
Factory for payment processors.

Builds the slug → processor registry from settings; processors whose
credentials are missing are skipped with a warning.
"""
from __future__ import annotations

from typing import Optional

from application.services.processor_registry import PaymentProcessorRegistry
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings

logger = get_logger(__name__)


def build_processor_registry(config: Optional[PaymentSettings] = None) -> PaymentProcessorRegistry:
    config = config or payment_settings
    registry = PaymentProcessorRegistry()
    retry = {"max": config.retry.max, "base": config.retry.base_backoff}
    timeouts = config.timeouts.model_dump()
    for name in config.enabled_processors:
        slug = name.lower()
        if slug == "manual":
            from .manual import ManualProcessor

            registry.register(
                ManualProcessor(
                    instructions_url=config.manual.instructions_url,
                    webhook_secret=config.manual.webhook_secret,
                    timeouts=timeouts,
                )
            )
        elif slug == "stripe":
            if not config.stripe.secret_key:
                logger.warning("payment_processor_skipped", slug=slug, reason="missing_secret_key")
                continue
            from .stripe_client import StripeProcessor

            registry.register(
                StripeProcessor(
                    secret_key=config.stripe.secret_key,
                    webhook_secret=config.stripe.webhook_secret,
                    success_url=config.stripe.success_url,
                    cancel_url=config.stripe.cancel_url,
                    retry=retry,
                    timeouts=timeouts,
                )
            )
        else:
            logger.warning("payment_processor_unknown", slug=slug)
    logger.info("payment_processors_registered", slugs=registry.slugs())
    return registry
