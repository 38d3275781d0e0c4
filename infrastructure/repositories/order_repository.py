"""
订单与服务仓储实现
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import OrderNotFoundException, ServiceNotFoundException, StateConflictException
from domain.order.entity import HostingService, Order, OrderItem, OrderStatus, ServiceStatus
from domain.order.repository import OrderRepository, ServiceRepository
from infrastructure.models.order import OrderItemModel, OrderModel, ServiceModel

logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _item_to_entity(self, model: OrderItemModel) -> OrderItem:
        return OrderItem(
            id=model.id,
            order_id=model.order_id,
            product_id=model.product_id,
            product_name=model.product_name,
            billing_cycle=model.billing_cycle,
            quantity=model.quantity,
            setup_fee=model.setup_fee,
            recurring_fee=model.recurring_fee,
            discount=model.discount,
            total=model.total,
            domain=model.domain,
            hostname=model.hostname,
            config_options=model.config_options or {},
            service_id=model.service_id,
        )

    async def _to_entity(self, model: OrderModel) -> Order:
        result = await self.session.execute(
            select(OrderItemModel)
            .where(OrderItemModel.order_id == model.id)
            .order_by(OrderItemModel.position, OrderItemModel.id)
        )
        return Order(
            id=model.id,
            order_number=model.order_number,
            customer_id=model.customer_id,
            currency=model.currency,
            subtotal=model.subtotal,
            discount=model.discount,
            tax_amount=model.tax_amount,
            total=model.total,
            status=model.status,
            coupon_id=model.coupon_id,
            ip_address=model.ip_address,
            notes=model.notes,
            admin_notes=model.admin_notes,
            items=[self._item_to_entity(m) for m in result.scalars().all()],
            created_at=model.created_at,
            updated_at=model.updated_at,
            activated_at=model.activated_at,
            cancelled_at=model.cancelled_at,
        )

    async def create(self, order: Order) -> Order:
        model = OrderModel(
            order_number=order.order_number,
            customer_id=order.customer_id,
            status=order.status.value,
            currency=order.currency,
            subtotal=order.subtotal,
            discount=order.discount,
            tax_amount=order.tax_amount,
            total=order.total,
            coupon_id=order.coupon_id,
            ip_address=order.ip_address,
            notes=order.notes,
            admin_notes=order.admin_notes,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError:
            logger.warning("order_number_conflict", order_number=order.order_number)
            raise StateConflictException(
                "Order number already exists",
                details={"order_number": order.order_number},
            )
        for position, item in enumerate(order.items):
            self.session.add(
                OrderItemModel(
                    order_id=model.id,
                    position=position,
                    product_id=item.product_id,
                    product_name=item.product_name,
                    billing_cycle=item.billing_cycle,
                    quantity=item.quantity,
                    setup_fee=item.setup_fee,
                    recurring_fee=item.recurring_fee,
                    discount=item.discount,
                    total=item.total,
                    domain=item.domain,
                    hostname=item.hostname,
                    config_options={str(k): v for k, v in item.config_options.items()},
                )
            )
        await self.session.flush()
        await self.session.refresh(model)
        return await self._to_entity(model)

    async def get_by_id(self, order_id: int, *, for_update: bool = False) -> Optional[Order]:
        stmt = select(OrderModel).where(OrderModel.id == order_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return await self._to_entity(model) if model else None

    async def get_by_number(self, order_number: str) -> Optional[Order]:
        result = await self.session.execute(select(OrderModel).where(OrderModel.order_number == order_number))
        model = result.scalar_one_or_none()
        return await self._to_entity(model) if model else None

    async def _list(self, stmt, status: Optional[OrderStatus], skip: int, limit: int) -> List[Order]:
        if status is not None:
            stmt = stmt.where(OrderModel.status == OrderStatus(status).value)
        result = await self.session.execute(
            stmt.order_by(OrderModel.created_at.desc(), OrderModel.id.desc()).offset(skip).limit(limit)
        )
        return [await self._to_entity(m) for m in result.scalars().all()]

    async def list_by_customer(
        self,
        customer_id: int,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Order]:
        return await self._list(select(OrderModel).where(OrderModel.customer_id == customer_id), status, skip, limit)

    async def list_all(self, status: Optional[OrderStatus] = None, skip: int = 0, limit: int = 50) -> List[Order]:
        return await self._list(select(OrderModel), status, skip, limit)

    async def update_status(self, order: Order) -> Order:
        model = await self.session.get(OrderModel, order.id)
        if model is None:
            raise OrderNotFoundException(order.id)
        model.status = order.status.value
        model.admin_notes = order.admin_notes
        model.activated_at = order.activated_at
        model.cancelled_at = order.cancelled_at
        await self.session.flush()
        return order

    async def set_item_service(self, item: OrderItem) -> None:
        await self.session.execute(
            update(OrderItemModel)
            .where(OrderItemModel.id == item.id, OrderItemModel.service_id.is_(None))
            .values(service_id=item.service_id)
        )


class SQLAlchemyServiceRepository(ServiceRepository):
    """托管服务仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ServiceModel) -> HostingService:
        return HostingService(
            id=model.id,
            customer_id=model.customer_id,
            order_id=model.order_id,
            product_id=model.product_id,
            product_name=model.product_name,
            billing_cycle=model.billing_cycle,
            amount=model.amount,
            status=model.status,
            domain=model.domain,
            hostname=model.hostname,
            config_options=model.config_options or {},
            registration_date=model.registration_date,
            next_due_date=model.next_due_date,
            suspension_reason=model.suspension_reason,
            termination_date=model.termination_date,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _apply(self, model: ServiceModel, service: HostingService) -> None:
        model.status = service.status.value
        model.billing_cycle = service.billing_cycle
        model.amount = service.amount
        model.domain = service.domain
        model.hostname = service.hostname
        model.config_options = {str(k): v for k, v in service.config_options.items()}
        model.registration_date = service.registration_date
        model.next_due_date = service.next_due_date
        model.suspension_reason = service.suspension_reason
        model.termination_date = service.termination_date

    async def create(self, service: HostingService) -> HostingService:
        model = ServiceModel(
            customer_id=service.customer_id,
            order_id=service.order_id,
            product_id=service.product_id,
            product_name=service.product_name,
        )
        self._apply(model, service)
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def get_by_id(self, service_id: int, *, for_update: bool = False) -> Optional[HostingService]:
        stmt = select(ServiceModel).where(ServiceModel.id == service_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def update(self, service: HostingService) -> HostingService:
        model = await self.session.get(ServiceModel, service.id)
        if model is None:
            raise ServiceNotFoundException(service.id)
        self._apply(model, service)
        await self.session.flush()
        return self._to_entity(model)

    async def list_by_order(self, order_id: int) -> List[HostingService]:
        result = await self.session.execute(
            select(ServiceModel).where(ServiceModel.order_id == order_id).order_by(ServiceModel.id)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_by_customer(
        self, customer_id: int, status: Optional[ServiceStatus] = None
    ) -> List[HostingService]:
        stmt = select(ServiceModel).where(ServiceModel.customer_id == customer_id)
        if status is not None:
            stmt = stmt.where(ServiceModel.status == ServiceStatus(status).value)
        result = await self.session.execute(stmt.order_by(ServiceModel.id))
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_due(self, before: datetime, limit: int = 100) -> List[HostingService]:
        result = await self.session.execute(
            select(ServiceModel)
            .where(
                ServiceModel.status == ServiceStatus.ACTIVE.value,
                ServiceModel.next_due_date.is_not(None),
                ServiceModel.next_due_date <= before,
            )
            .order_by(ServiceModel.next_due_date.asc(), ServiceModel.id.asc())
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]
