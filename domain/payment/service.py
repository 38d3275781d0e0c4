"""
账务领域服务 - 余额、退款与账单入账的业务规则

调用方必须在同一个工作单元内调用这些方法，并在调用前对
客户行 / 原交易行 / 账单行加锁，保证“变更 + 审计记录”一起提交。
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from domain.common.events import DomainEvent
from domain.common.exceptions import InvalidAmountException
from domain.common.money import ZERO, to_decimal
from domain.common.timeutil import utc_now
from domain.customer.entity import Customer
from domain.customer.repository import CustomerRepository
from domain.invoice.entity import Invoice
from domain.invoice.repository import InvoiceRepository

from .entity import (
    AdjustmentType,
    CreditAdjustment,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from .events import CreditAdjusted, InvoicePaid, PaymentRefunded
from .repository import CreditAdjustmentRepository, TransactionRepository


class PaymentLedgerService:
    """
    账务领域服务

    职责：
    1. 余额增减与 CreditAdjustment 审计记录
    2. 退款规则（可退判断、剩余可退金额）
    3. 账单入账
    4. 收集领域事件
    """

    def __init__(
        self,
        customer_repository: CustomerRepository,
        adjustment_repository: CreditAdjustmentRepository,
        transaction_repository: TransactionRepository,
        invoice_repository: InvoiceRepository,
    ) -> None:
        self.customer_repository = customer_repository
        self.adjustment_repository = adjustment_repository
        self.transaction_repository = transaction_repository
        self.invoice_repository = invoice_repository
        self.events: List[DomainEvent] = []

    async def add_credit(
        self,
        customer: Customer,
        amount: Decimal,
        *,
        currency: str,
        reason: Optional[str] = None,
        staff_id: Optional[int] = None,
        related_type: Optional[str] = None,
        related_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> CreditAdjustment:
        before, after = customer.add_credit(amount)
        return await self._record_adjustment(
            customer,
            AdjustmentType.ADD,
            to_decimal(amount),
            before,
            after,
            currency=currency,
            reason=reason,
            staff_id=staff_id,
            related_type=related_type,
            related_id=related_id,
            now=now,
        )

    async def deduct_credit(
        self,
        customer: Customer,
        amount: Decimal,
        *,
        currency: str,
        reason: Optional[str] = None,
        related_type: Optional[str] = None,
        related_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> CreditAdjustment:
        before, after = customer.deduct_credit(amount)
        return await self._record_adjustment(
            customer,
            AdjustmentType.SUBTRACT,
            to_decimal(amount),
            before,
            after,
            currency=currency,
            reason=reason,
            related_type=related_type,
            related_id=related_id,
            now=now,
        )

    async def _record_adjustment(
        self,
        customer: Customer,
        adjustment_type: AdjustmentType,
        amount: Decimal,
        before: Decimal,
        after: Decimal,
        *,
        currency: str,
        reason: Optional[str] = None,
        staff_id: Optional[int] = None,
        related_type: Optional[str] = None,
        related_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> CreditAdjustment:
        await self.customer_repository.update_credit(customer)
        adjustment = await self.adjustment_repository.create(
            CreditAdjustment(
                id=None,
                customer_id=customer.id,
                adjustment_type=adjustment_type,
                amount=amount,
                currency=currency,
                balance_before=before,
                balance_after=after,
                reason=reason,
                related_type=related_type,
                related_id=related_id,
                staff_id=staff_id,
                created_at=now or utc_now(),
            )
        )
        self.events.append(
            CreditAdjusted(
                customer_id=customer.id,
                adjustment_type=adjustment_type.value,
                amount=amount,
                balance_after=after,
            )
        )
        return adjustment

    async def apply_to_invoice(self, invoice: Invoice, amount: Decimal, now: Optional[datetime] = None) -> Invoice:
        became_paid = invoice.apply_payment(amount, now)
        invoice = await self.invoice_repository.update(invoice)
        if became_paid:
            self.events.append(
                InvoicePaid(
                    invoice_id=invoice.id,
                    customer_id=invoice.customer_id,
                    total=invoice.total,
                    currency=invoice.currency,
                )
            )
        return invoice

    async def record_payment(
        self,
        *,
        customer_id: int,
        amount: Decimal,
        currency: str,
        gateway: str,
        transaction_type: TransactionType = TransactionType.PAYMENT,
        fee: Decimal = ZERO,
        invoice_id: Optional[int] = None,
        gateway_trans_id: Optional[str] = None,
        description: Optional[str] = None,
        ip_address: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Transaction:
        amount = to_decimal(amount)
        if amount <= ZERO:
            raise InvalidAmountException(amount)
        return await self.transaction_repository.create(
            Transaction(
                id=None,
                customer_id=customer_id,
                transaction_type=transaction_type,
                status=TransactionStatus.COMPLETED,
                currency=currency,
                amount=amount,
                fee=fee,
                invoice_id=invoice_id,
                gateway=gateway,
                gateway_trans_id=gateway_trans_id,
                description=description,
                ip_address=ip_address,
                created_at=now or utc_now(),
            )
        )

    async def refund(
        self,
        original: Transaction,
        amount: Decimal,
        *,
        reason: Optional[str] = None,
        staff_id: Optional[int] = None,
        gateway_trans_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Transaction:
        """登记退款：校验失败时原交易计数不变"""
        now = now or utc_now()
        original.register_refund(amount, now)
        refund = await self.transaction_repository.create(
            original.build_refund(
                amount,
                reason=reason,
                staff_id=staff_id,
                gateway_trans_id=gateway_trans_id,
                now=now,
            )
        )
        await self.transaction_repository.update_refund_state(original)
        self.events.append(
            PaymentRefunded(
                transaction_id=original.id,
                refund_transaction_id=refund.id,
                customer_id=original.customer_id,
                amount=to_decimal(amount),
                currency=original.currency,
            )
        )
        return refund
