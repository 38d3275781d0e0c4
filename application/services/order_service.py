"""
订单应用服务（application/services）- 结账、激活、取消与托管服务生命周期

结账（创建订单 + 清空购物车）与激活（创建服务 + 状态翻转）各自在一个工作单元内完成。
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional

from application.ports.webhook_scheduler import EventPublisher
from application.services.tax_service import TaxCalculator
from core.logging_config import get_logger
from domain.catalog.billing_cycle import is_known_cycle
from domain.common.events import DomainEvent
from domain.common.exceptions import (
    CartEmptyException,
    CartNotFoundException,
    CustomerNotFoundException,
    InvalidCouponException,
    OrderNotFoundException,
    ServiceNotFoundException,
)
from domain.common.money import money_sum
from domain.common.timeutil import utc_now
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import HostingService, Order, OrderItem, OrderStatus, ServiceStatus
from domain.order.events import OrderActivated, OrderCancelled, OrderCreated, ServiceStatusChanged

logger = get_logger(__name__)


class OrderService:
    """订单应用服务"""

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

    # ------------------------------------------------------------------
    # 订单
    # ------------------------------------------------------------------
    async def create_order(
        self,
        customer_id: int,
        cart_id: int,
        ip_address: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """购物车 → 订单快照；订单写入与购物车删除同一事务提交"""
        async with self._uow_factory() as uow:
            cart = await uow.cart_repository.get_by_id(cart_id, for_update=True)
            if cart is None or cart.customer_id != customer_id:
                raise CartNotFoundException(cart_id)
            if cart.is_empty():
                raise CartEmptyException(cart_id)
            customer = await uow.customer_repository.get_by_id(customer_id)
            if customer is None:
                raise CustomerNotFoundException(customer_id)

            # 优惠券在结账时按当前状态重新校验并重算折扣
            coupon = None
            if cart.coupon_id is not None:
                coupon = await uow.coupon_repository.get_by_id(cart.coupon_id, for_update=True)
                if coupon is None:
                    raise InvalidCouponException(str(cart.coupon_id), "not_found")
                reason = coupon.invalid_reason()
                if reason is not None:
                    raise InvalidCouponException(coupon.code, reason)
                cart.apply_coupon(coupon)

            items = [OrderItem.from_cart_item(item) for item in cart.items]
            taxable = money_sum(i.subtotal for i in items) - money_sum(i.discount for i in items)
            breakdown = await TaxCalculator(uow.customer_repository, uow.tax_rule_repository).for_customer(
                customer_id, taxable
            )

            order = await uow.order_repository.create(
                Order.place(
                    customer_id=customer_id,
                    currency=cart.currency,
                    items=items,
                    tax_amount=breakdown.tax,
                    coupon_id=cart.coupon_id,
                    ip_address=ip_address,
                    notes=notes,
                )
            )
            if coupon is not None and not await uow.coupon_repository.increment_usage(coupon.id):
                raise InvalidCouponException(coupon.code, "usage_exhausted")
            await uow.cart_repository.delete(cart.id)

        logger.info(
            "order_created",
            order_id=order.id,
            order_number=order.order_number,
            customer_id=customer_id,
            items=len(order.items),
            total=str(order.total),
        )
        await self._publish(
            [
                OrderCreated(
                    order_id=order.id,
                    order_number=order.order_number,
                    customer_id=customer_id,
                    total=order.total,
                    currency=order.currency,
                )
            ]
        )
        return order

    async def activate_order(self, order_id: int) -> Order:
        """为每个订单条目创建服务并回填 service_id，最后把订单置为 active"""
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_id(order_id, for_update=True)
            if order is None:
                raise OrderNotFoundException(order_id)
            now = utc_now()
            order.activate(now)

            service_ids: List[int] = []
            for item in order.items:
                if not is_known_cycle(item.billing_cycle):
                    logger.warning(
                        "unknown_billing_cycle",
                        order_id=order_id,
                        order_item_id=item.id,
                        billing_cycle=item.billing_cycle,
                        fallback="monthly",
                    )
                service = HostingService.provision(order, item, now)
                service.activate(now)
                service = await uow.service_repository.create(service)
                item.attach_service(service.id)
                await uow.order_repository.set_item_service(item)
                service_ids.append(service.id)

            await uow.order_repository.update_status(order)

        logger.info("order_activated", order_id=order_id, services=service_ids)
        await self._publish([OrderActivated(order_id=order_id, customer_id=order.customer_id, service_ids=service_ids)])
        return order

    async def cancel_order(self, order_id: int, reason: Optional[str] = None) -> Order:
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_id(order_id, for_update=True)
            if order is None:
                raise OrderNotFoundException(order_id)
            order.cancel(reason)
            await uow.order_repository.update_status(order)

        logger.info("order_cancelled", order_id=order_id, reason=reason)
        await self._publish([OrderCancelled(order_id=order_id, customer_id=order.customer_id, reason=reason)])
        return order

    async def get_order(self, order_id: int) -> Order:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        return order

    async def get_order_by_number(self, order_number: str) -> Order:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_number(order_number)
        if order is None:
            raise OrderNotFoundException(order_number, field="order_number")
        return order

    async def list_customer_orders(
        self,
        customer_id: int,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Order]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.order_repository.list_by_customer(customer_id, status=status, skip=skip, limit=limit)

    async def list_all_orders(
        self, status: Optional[OrderStatus] = None, skip: int = 0, limit: int = 50
    ) -> List[Order]:
        """后台订单列表，可按状态过滤"""
        async with self._uow_factory(readonly=True) as uow:
            return await uow.order_repository.list_all(status=status, skip=skip, limit=limit)

    # ------------------------------------------------------------------
    # 托管服务
    # ------------------------------------------------------------------
    async def get_service(self, service_id: int) -> HostingService:
        async with self._uow_factory(readonly=True) as uow:
            service = await uow.service_repository.get_by_id(service_id)
        if service is None:
            raise ServiceNotFoundException(service_id)
        return service

    async def list_customer_services(
        self, customer_id: int, status: Optional[ServiceStatus] = None
    ) -> List[HostingService]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.service_repository.list_by_customer(customer_id, status=status)

    async def _change_service(self, service_id: int, action: Callable[[HostingService], None]) -> HostingService:
        async with self._uow_factory() as uow:
            service = await uow.service_repository.get_by_id(service_id, for_update=True)
            if service is None:
                raise ServiceNotFoundException(service_id)
            action(service)
            service = await uow.service_repository.update(service)
        logger.info("service_status_changed", service_id=service_id, status=service.status.value)
        await self._publish(
            [ServiceStatusChanged(service_id=service_id, customer_id=service.customer_id, status=service.status.value)]
        )
        return service

    async def suspend_service(self, service_id: int, reason: Optional[str] = None) -> HostingService:
        return await self._change_service(service_id, lambda s: s.suspend(reason))

    async def unsuspend_service(self, service_id: int) -> HostingService:
        return await self._change_service(service_id, lambda s: s.unsuspend())

    async def terminate_service(self, service_id: int) -> HostingService:
        return await self._change_service(service_id, lambda s: s.terminate())

    async def renew_service(self, service_id: int, now: Optional[datetime] = None) -> HostingService:
        """已到期从当前时间顺延，提前续费从原到期日顺延"""
        async with self._uow_factory() as uow:
            service = await uow.service_repository.get_by_id(service_id, for_update=True)
            if service is None:
                raise ServiceNotFoundException(service_id)
            if not is_known_cycle(service.billing_cycle):
                logger.warning("unknown_billing_cycle", service_id=service_id, billing_cycle=service.billing_cycle)
            service.renew(now)
            service = await uow.service_repository.update(service)
        logger.info("service_renewed", service_id=service_id, next_due_date=service.next_due_date.isoformat())
        return service

    async def get_due_services(self, before: Optional[datetime] = None, limit: int = 100) -> List[HostingService]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.service_repository.list_due(before or utc_now(), limit)
