"""Gateway slug → PaymentProcessor registry, built once at startup and injected."""
from __future__ import annotations

from typing import Dict, Iterable, List

from application.ports.payment_gateway import PaymentProcessor
from core.logging_config import get_logger
from domain.common.exceptions import ProcessorNotRegisteredException

logger = get_logger(__name__)


class PaymentProcessorRegistry:

    def __init__(self, processors: Iterable[PaymentProcessor] = ()) -> None:
        self._processors: Dict[str, PaymentProcessor] = {}
        for processor in processors:
            self.register(processor)

    def register(self, processor: PaymentProcessor, slug: str | None = None) -> None:
        key = (slug or processor.slug).strip().lower()
        if not key:
            raise ValueError("processor slug must not be empty")
        if key in self._processors:
            logger.warning("payment_processor_replaced", slug=key)
        self._processors[key] = processor
        logger.info("payment_processor_registered", slug=key)

    def get(self, slug: str) -> PaymentProcessor:
        processor = self._processors.get((slug or "").strip().lower())
        if processor is None:
            raise ProcessorNotRegisteredException(slug)
        return processor

    def __contains__(self, slug: str) -> bool:
        return (slug or "").strip().lower() in self._processors

    def slugs(self) -> List[str]:
        return sorted(self._processors)
