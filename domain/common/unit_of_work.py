"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.cart.repository import CartRepository, CouponRepository
from domain.catalog.repository import CatalogRepository
from domain.customer.repository import CustomerRepository
from domain.invoice.repository import InvoiceRepository
from domain.notification.repository import NotificationRepository
from domain.order.repository import OrderRepository, ServiceRepository
from domain.payment.repository import (
    AutoPaymentRepository,
    CreditAdjustmentRepository,
    GatewayRepository,
    GatewayWebhookLogRepository,
    PaymentMethodRepository,
    PaymentRequestRepository,
    SubscriptionRepository,
    TransactionRepository,
)
from domain.tax.repository import TaxRuleRepository
from domain.webhook.repository import WebhookDeliveryRepository, WebhookRepository


class AbstractUnitOfWork(ABC):
    """应用层事务边界控制抽象：一个工作单元内的写操作一起提交或一起回滚"""

    customer_repository: CustomerRepository
    catalog_repository: CatalogRepository
    tax_rule_repository: TaxRuleRepository
    cart_repository: CartRepository
    coupon_repository: CouponRepository
    order_repository: OrderRepository
    service_repository: ServiceRepository
    invoice_repository: InvoiceRepository
    gateway_repository: GatewayRepository
    payment_request_repository: PaymentRequestRepository
    transaction_repository: TransactionRepository
    credit_adjustment_repository: CreditAdjustmentRepository
    subscription_repository: SubscriptionRepository
    gateway_webhook_log_repository: GatewayWebhookLogRepository
    payment_method_repository: PaymentMethodRepository
    auto_payment_repository: AutoPaymentRepository
    webhook_repository: WebhookRepository
    webhook_delivery_repository: WebhookDeliveryRepository
    notification_repository: NotificationRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # 只在非只读且未显式提交时自动提交
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""
        ...
