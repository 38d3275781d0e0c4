"""账单应用服务 - 开票（订单、手工、续费）、查询、线下入账、退款、取消与逾期标记"""
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional

from application.ports.webhook_scheduler import EventPublisher
from application.services.tax_service import TaxCalculator
from core.config import settings
from core.logging_config import get_logger
from domain.catalog.billing_cycle import add_billing_period
from domain.common.events import DomainEvent
from domain.common.exceptions import (
    CustomerNotFoundException,
    InvalidAmountException,
    InvalidStateTransitionException,
    InvoiceNotFoundException,
    OrderNotFoundException,
    RefundExceedsRemainingException,
    ServiceNotFoundException,
)
from domain.common.money import ZERO, money_sum, to_decimal
from domain.common.timeutil import utc_now
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.invoice.entity import PAYABLE_STATUSES, Invoice, InvoiceLine, InvoiceStatus
from domain.order.entity import ServiceStatus
from domain.payment.entity import Transaction
from domain.payment.events import PaymentCompleted
from domain.payment.service import PaymentLedgerService

logger = get_logger(__name__)


def _ledger(uow: AbstractUnitOfWork) -> PaymentLedgerService:
    return PaymentLedgerService(
        uow.customer_repository,
        uow.credit_adjustment_repository,
        uow.transaction_repository,
        uow.invoice_repository,
    )


class InvoiceService:

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        publisher: Optional[EventPublisher] = None,
    ):
        self._uow_factory = uow_factory
        self._publisher = publisher

    async def _publish(self, events: List[DomainEvent]) -> None:
        if self._publisher is not None and events:
            await self._publisher.publish(events)

    @staticmethod
    def _due_in(due_days: Optional[int]) -> timedelta:
        return timedelta(days=settings.billing.invoice_due_days if due_days is None else due_days)

    # ------------------------------------------------------------------
    # 开票
    # ------------------------------------------------------------------
    async def create_from_order(self, order_id: int, due_days: Optional[int] = None) -> Invoice:
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            invoice = await uow.invoice_repository.create(Invoice.from_order(order, due_in=self._due_in(due_days)))
        logger.info(
            "invoice_created",
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            order_id=order_id,
            total=str(invoice.total),
        )
        return invoice

    async def create_invoice(
        self,
        customer_id: int,
        lines: List[InvoiceLine],
        *,
        currency: Optional[str] = None,
        due_date: Optional[datetime] = None,
        due_days: Optional[int] = None,
    ) -> Invoice:
        """
        手工开票

        税额只按 taxable 行的折后金额计算；未指定到期日时按账单默认账期。
        """
        now = utc_now()
        async with self._uow_factory() as uow:
            customer = await uow.customer_repository.get_by_id(customer_id)
            if customer is None:
                raise CustomerNotFoundException(customer_id)
            taxable = money_sum(line.total for line in lines if line.taxable)
            breakdown = await TaxCalculator(uow.customer_repository, uow.tax_rule_repository).for_customer(
                customer_id, taxable
            )
            invoice = await uow.invoice_repository.create(
                Invoice.issue(
                    customer_id=customer_id,
                    currency=currency or settings.cart.default_currency,
                    lines=lines,
                    tax_amount=breakdown.tax,
                    due_date=due_date or now + self._due_in(due_days),
                    now=now,
                )
            )
        logger.info(
            "invoice_created",
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            customer_id=customer_id,
            lines=len(lines),
            total=str(invoice.total),
        )
        return invoice

    async def create_service_renewal_invoice(
        self,
        service_id: int,
        *,
        due_date: Optional[datetime] = None,
    ) -> Invoice:
        """
        为托管服务的下一个计费周期开票

        周期从当前到期日开始；到期日默认为服务的到期日。币种取自开通该服务的订单。
        """
        now = utc_now()
        async with self._uow_factory() as uow:
            service = await uow.service_repository.get_by_id(service_id)
            if service is None:
                raise ServiceNotFoundException(service_id)
            if service.status == ServiceStatus.TERMINATED:
                raise InvalidStateTransitionException("Service", service.status.value, "invoiced")
            order = await uow.order_repository.get_by_id(service.order_id)
            currency = order.currency if order is not None else settings.cart.default_currency

            period_start = service.next_due_date or now
            period_end = add_billing_period(period_start, service.billing_cycle)
            line = InvoiceLine(
                description=f"{service.product_name} ({period_start:%Y-%m-%d} - {period_end:%Y-%m-%d})",
                unit_price=service.amount,
                item_type="renewal",
                service_id=service.id,
                period_start=period_start,
                period_end=period_end,
            )
            breakdown = await TaxCalculator(uow.customer_repository, uow.tax_rule_repository).for_customer(
                service.customer_id, line.total
            )
            invoice = await uow.invoice_repository.create(
                Invoice.issue(
                    customer_id=service.customer_id,
                    currency=currency,
                    lines=[line],
                    tax_amount=breakdown.tax,
                    due_date=due_date or period_start,
                    now=now,
                )
            )
        logger.info(
            "renewal_invoice_created",
            invoice_id=invoice.id,
            service_id=service_id,
            period_start=period_start.isoformat(),
            period_end=period_end.isoformat(),
            total=str(invoice.total),
        )
        return invoice

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------
    async def get_invoice(self, invoice_id: int) -> Invoice:
        async with self._uow_factory(readonly=True) as uow:
            invoice = await uow.invoice_repository.get_by_id(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundException(invoice_id)
        return invoice

    async def get_invoice_by_number(self, invoice_number: str) -> Invoice:
        async with self._uow_factory(readonly=True) as uow:
            invoice = await uow.invoice_repository.get_by_number(invoice_number)
        if invoice is None:
            raise InvoiceNotFoundException(invoice_number, field="invoice_number")
        return invoice

    async def list_invoices(
        self,
        customer_id: int,
        status: Optional[InvoiceStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Invoice]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.invoice_repository.list_by_customer(
                customer_id,
                statuses=[status] if status is not None else None,
                skip=skip,
                limit=limit,
            )

    async def get_unpaid_invoices(self, customer_id: int) -> List[Invoice]:
        """未付与逾期的账单（不分页）"""
        async with self._uow_factory(readonly=True) as uow:
            return await uow.invoice_repository.list_by_customer(customer_id, statuses=PAYABLE_STATUSES, limit=None)

    # ------------------------------------------------------------------
    # 状态变更
    # ------------------------------------------------------------------
    async def cancel_invoice(self, invoice_id: int) -> Invoice:
        async with self._uow_factory() as uow:
            invoice = await uow.invoice_repository.get_by_id(invoice_id, for_update=True)
            if invoice is None:
                raise InvoiceNotFoundException(invoice_id)
            invoice.cancel()
            invoice = await uow.invoice_repository.update(invoice)
        logger.info("invoice_cancelled", invoice_id=invoice_id)
        return invoice

    async def record_payment(
        self,
        invoice_id: int,
        amount: Decimal,
        *,
        gateway: str = "manual",
        gateway_ref: Optional[str] = None,
    ) -> Transaction:
        """线下付款：写入已完成交易并入账到账单，同一事务提交"""
        async with self._uow_factory() as uow:
            invoice = await uow.invoice_repository.get_by_id(invoice_id, for_update=True)
            if invoice is None:
                raise InvoiceNotFoundException(invoice_id)
            ledger = _ledger(uow)
            transaction = await ledger.record_payment(
                customer_id=invoice.customer_id,
                amount=amount,
                currency=invoice.currency,
                gateway=gateway,
                invoice_id=invoice.id,
                gateway_trans_id=gateway_ref,
                description=f"Payment for invoice {invoice.invoice_number}",
            )
            await ledger.apply_to_invoice(invoice, amount)

        logger.info("invoice_payment_recorded", invoice_id=invoice_id, transaction_id=transaction.id, amount=str(amount))
        await self._publish(
            [
                PaymentCompleted(
                    transaction_id=transaction.id,
                    customer_id=transaction.customer_id,
                    amount=transaction.amount,
                    currency=transaction.currency,
                    gateway=gateway,
                    invoice_id=invoice_id,
                ),
                *ledger.events,
            ]
        )
        return transaction

    async def refund_invoice(
        self,
        invoice_id: int,
        amount: Decimal,
        *,
        reason: Optional[str] = None,
        staff_id: Optional[int] = None,
    ) -> List[Transaction]:
        """
        已付账单退款（只记账，不调用网关）

        退款从最近的付款流水开始分摊，每笔都登记到原交易；
        全部付款退完后账单状态变为 refunded。需要网关原路退回时按交易走 PaymentService.refund_transaction。
        """
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise InvalidAmountException(amount)
        async with self._uow_factory() as uow:
            invoice = await uow.invoice_repository.get_by_id(invoice_id, for_update=True)
            if invoice is None:
                raise InvoiceNotFoundException(invoice_id)
            if invoice.status != InvoiceStatus.PAID:
                raise InvalidStateTransitionException("Invoice", invoice.status.value, InvoiceStatus.REFUNDED.value)

            payments = [
                t
                for t in await uow.transaction_repository.list_payments_for_invoice(invoice_id, for_update=True)
                if t.is_refundable()
            ]
            remaining = money_sum(t.remaining_refundable for t in payments)
            if amount > remaining:
                raise RefundExceedsRemainingException(amount, remaining)

            ledger = _ledger(uow)
            refunds: List[Transaction] = []
            left = amount
            for payment in reversed(payments):
                if left <= ZERO:
                    break
                part = min(left, payment.remaining_refundable)
                refunds.append(await ledger.refund(payment, part, reason=reason, staff_id=staff_id))
                left -= part

            if amount == remaining:
                invoice.mark_refunded()
                await uow.invoice_repository.update(invoice)

        logger.info(
            "invoice_refunded",
            invoice_id=invoice_id,
            amount=str(amount),
            refunds=[r.id for r in refunds],
            status=invoice.status.value,
            staff_id=staff_id,
        )
        await self._publish(ledger.events)
        return refunds

    async def mark_overdue_invoices(self, now: Optional[datetime] = None) -> int:
        async with self._uow_factory() as uow:
            count = await uow.invoice_repository.mark_overdue(now or utc_now())
        if count:
            logger.info("invoices_marked_overdue", count=count)
        return count
