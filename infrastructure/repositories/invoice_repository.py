"""
账单仓储实现
"""
from datetime import datetime
from typing import Collection, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import InvoiceNotFoundException
from domain.invoice.entity import Invoice, InvoiceItem, InvoiceStatus
from domain.invoice.repository import InvoiceRepository
from infrastructure.models.invoice import InvoiceItemModel, InvoiceModel


class SQLAlchemyInvoiceRepository(InvoiceRepository):
    """账单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _to_entity(self, model: InvoiceModel) -> Invoice:
        result = await self.session.execute(
            select(InvoiceItemModel).where(InvoiceItemModel.invoice_id == model.id).order_by(InvoiceItemModel.id)
        )
        items = [
            InvoiceItem(
                id=m.id,
                invoice_id=m.invoice_id,
                description=m.description,
                amount=m.amount,
                quantity=m.quantity,
                service_id=m.service_id,
                item_type=m.item_type,
                period_start=m.period_start,
                period_end=m.period_end,
            )
            for m in result.scalars().all()
        ]
        return Invoice(
            id=model.id,
            invoice_number=model.invoice_number,
            customer_id=model.customer_id,
            currency=model.currency,
            subtotal=model.subtotal,
            discount=model.discount,
            tax_amount=model.tax_amount,
            total=model.total,
            amount_paid=model.amount_paid,
            balance=model.balance,
            status=model.status,
            order_id=model.order_id,
            due_date=model.due_date,
            paid_at=model.paid_at,
            items=items,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def create(self, invoice: Invoice) -> Invoice:
        model = InvoiceModel(
            invoice_number=invoice.invoice_number,
            customer_id=invoice.customer_id,
            order_id=invoice.order_id,
            status=invoice.status.value,
            currency=invoice.currency,
            subtotal=invoice.subtotal,
            discount=invoice.discount,
            tax_amount=invoice.tax_amount,
            total=invoice.total,
            amount_paid=invoice.amount_paid,
            balance=invoice.balance,
            due_date=invoice.due_date,
            paid_at=invoice.paid_at,
        )
        self.session.add(model)
        await self.session.flush()
        for item in invoice.items:
            self.session.add(
                InvoiceItemModel(
                    invoice_id=model.id,
                    description=item.description,
                    amount=item.amount,
                    quantity=item.quantity,
                    service_id=item.service_id,
                    item_type=item.item_type,
                    period_start=item.period_start,
                    period_end=item.period_end,
                )
            )
        await self.session.flush()
        await self.session.refresh(model)
        return await self._to_entity(model)

    async def get_by_id(self, invoice_id: int, *, for_update: bool = False) -> Optional[Invoice]:
        stmt = select(InvoiceModel).where(InvoiceModel.id == invoice_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return await self._to_entity(model) if model else None

    async def get_by_number(self, invoice_number: str) -> Optional[Invoice]:
        result = await self.session.execute(select(InvoiceModel).where(InvoiceModel.invoice_number == invoice_number))
        model = result.scalar_one_or_none()
        return await self._to_entity(model) if model else None

    async def list_by_customer(
        self,
        customer_id: int,
        statuses: Optional[Collection[InvoiceStatus]] = None,
        skip: int = 0,
        limit: Optional[int] = 50,
    ) -> List[Invoice]:
        stmt = select(InvoiceModel).where(InvoiceModel.customer_id == customer_id)
        if statuses:
            stmt = stmt.where(InvoiceModel.status.in_([InvoiceStatus(s).value for s in statuses]))
        stmt = stmt.order_by(InvoiceModel.created_at.desc(), InvoiceModel.id.desc()).offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return [await self._to_entity(m) for m in result.scalars().all()]

    async def update(self, invoice: Invoice) -> Invoice:
        model = await self.session.get(InvoiceModel, invoice.id)
        if model is None:
            raise InvoiceNotFoundException(invoice.id)
        model.status = invoice.status.value
        model.amount_paid = invoice.amount_paid
        model.balance = invoice.balance
        model.paid_at = invoice.paid_at
        model.due_date = invoice.due_date
        await self.session.flush()
        return invoice

    async def mark_overdue(self, now: datetime) -> int:
        result = await self.session.execute(
            update(InvoiceModel)
            .where(
                InvoiceModel.status == InvoiceStatus.UNPAID.value,
                InvoiceModel.due_date.is_not(None),
                InvoiceModel.due_date < now,
            )
            .values(status=InvoiceStatus.OVERDUE.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
