"""SQLAlchemy Unit of Work 实现"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.cart_repository import SQLAlchemyCartRepository, SQLAlchemyCouponRepository
from infrastructure.repositories.catalog_repository import SQLAlchemyCatalogRepository
from infrastructure.repositories.customer_repository import SQLAlchemyCustomerRepository
from infrastructure.repositories.invoice_repository import SQLAlchemyInvoiceRepository
from infrastructure.repositories.notification_repository import SQLAlchemyNotificationRepository
from infrastructure.repositories.order_repository import SQLAlchemyOrderRepository, SQLAlchemyServiceRepository
from infrastructure.repositories.payment_repository import (
    SQLAlchemyAutoPaymentRepository,
    SQLAlchemyCreditAdjustmentRepository,
    SQLAlchemyGatewayRepository,
    SQLAlchemyGatewayWebhookLogRepository,
    SQLAlchemyPaymentMethodRepository,
    SQLAlchemyPaymentRequestRepository,
    SQLAlchemySubscriptionRepository,
    SQLAlchemyTransactionRepository,
)
from infrastructure.repositories.tax_repository import SQLAlchemyTaxRuleRepository
from infrastructure.repositories.webhook_repository import (
    SQLAlchemyWebhookDeliveryRepository,
    SQLAlchemyWebhookRepository,
)

_REPOSITORIES = {
    "customer_repository": SQLAlchemyCustomerRepository,
    "catalog_repository": SQLAlchemyCatalogRepository,
    "tax_rule_repository": SQLAlchemyTaxRuleRepository,
    "cart_repository": SQLAlchemyCartRepository,
    "coupon_repository": SQLAlchemyCouponRepository,
    "order_repository": SQLAlchemyOrderRepository,
    "service_repository": SQLAlchemyServiceRepository,
    "invoice_repository": SQLAlchemyInvoiceRepository,
    "gateway_repository": SQLAlchemyGatewayRepository,
    "payment_request_repository": SQLAlchemyPaymentRequestRepository,
    "transaction_repository": SQLAlchemyTransactionRepository,
    "credit_adjustment_repository": SQLAlchemyCreditAdjustmentRepository,
    "subscription_repository": SQLAlchemySubscriptionRepository,
    "gateway_webhook_log_repository": SQLAlchemyGatewayWebhookLogRepository,
    "payment_method_repository": SQLAlchemyPaymentMethodRepository,
    "auto_payment_repository": SQLAlchemyAutoPaymentRepository,
    "webhook_repository": SQLAlchemyWebhookRepository,
    "webhook_delivery_repository": SQLAlchemyWebhookDeliveryRepository,
    "notification_repository": SQLAlchemyNotificationRepository,
}


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """基于SQLAlchemy的Unit of Work：一个会话、一个事务"""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        for name, repository_cls in _REPOSITORIES.items():
            setattr(self, name, repository_cls(self.session))
        # 仅在非只读模式下显式开启事务
        if not self._readonly and not self.session.in_transaction():
            await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            for name in _REPOSITORIES:
                setattr(self, name, None)

    async def commit(self) -> None:
        if self._readonly:
            # 只读情况下不提交
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False


def sqlalchemy_uow_factory(session_factory: Callable[[], AsyncSession] = AsyncSessionLocal):
    """返回 uow 工厂：每次调用得到一个新的工作单元"""

    def _factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=readonly)

    return _factory
