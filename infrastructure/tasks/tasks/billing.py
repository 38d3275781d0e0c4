"""Periodic billing housekeeping"""
from __future__ import annotations

from celery import shared_task

from application.services.cart_service import CartService
from application.services.invoice_service import InvoiceService
from core.logging_config import get_logger

from ..utils.base_task import BaseTask, run_with_uow

logger = get_logger(__name__)


@shared_task(name="carts.cleanup_expired", bind=True, base=BaseTask)
def cleanup_expired_carts(self) -> int:
    async def _job(uow_factory):
        return await CartService(uow_factory).cleanup_expired_carts()

    return run_with_uow(_job)


@shared_task(name="invoices.mark_overdue", bind=True, base=BaseTask)
def mark_overdue_invoices(self) -> int:
    async def _job(uow_factory):
        return await InvoiceService(uow_factory).mark_overdue_invoices()

    return run_with_uow(_job)
