"""
API依赖项 - 从应用容器装配应用服务

容器在应用启动时构建一次（见 main.create_app），路由只通过这里的依赖函数取用服务。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from fastapi import Request

from application.ports.webhook_scheduler import EmailQueue, WebhookScheduler
from application.services.cart_service import CartService
from application.services.invoice_service import InvoiceService
from application.services.notification_service import NotificationService
from application.services.order_service import OrderService
from application.services.payment_service import PaymentService
from application.services.processor_registry import PaymentProcessorRegistry
from application.services.tax_service import TaxService
from application.services.webhook_service import WebhookDeliveryService, WebhookService
from core.config import settings


@dataclass
class ServiceContainer:
    """组合根：uow 工厂、处理器注册表与 Webhook 调度器"""

    uow_factory: Callable[..., Any]
    registry: PaymentProcessorRegistry
    scheduler: Optional[WebhookScheduler] = None
    email_queue: Optional[EmailQueue] = None
    delivery: Optional[WebhookDeliveryService] = None
    webhooks: WebhookService = field(init=False)

    def __post_init__(self) -> None:
        if self.delivery is None:
            self.delivery = WebhookDeliveryService(
                self.uow_factory,
                header_prefix=settings.webhooks.header_prefix,
                user_agent=settings.webhooks.user_agent,
            )
        if self.scheduler is None:
            from infrastructure.webhooks import build_webhook_scheduler

            self.scheduler = build_webhook_scheduler(self.delivery, settings.webhooks)
        self.webhooks = WebhookService(self.uow_factory, self.scheduler)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_cart_service(request: Request) -> CartService:
    return CartService(get_container(request).uow_factory)


def get_order_service(request: Request) -> OrderService:
    container = get_container(request)
    return OrderService(container.uow_factory, publisher=container.webhooks)


def get_invoice_service(request: Request) -> InvoiceService:
    container = get_container(request)
    return InvoiceService(container.uow_factory, publisher=container.webhooks)


def get_payment_service(request: Request) -> PaymentService:
    container = get_container(request)
    return PaymentService(container.uow_factory, container.registry, publisher=container.webhooks)


def get_tax_service(request: Request) -> TaxService:
    return TaxService(get_container(request).uow_factory)


def get_webhook_service(request: Request) -> WebhookService:
    return get_container(request).webhooks


def get_notification_service(request: Request) -> NotificationService:
    container = get_container(request)
    return NotificationService(
        container.uow_factory,
        email_queue=container.email_queue,
        webhooks=container.webhooks,
    )


def client_ip(request: Request) -> Optional[str]:
    """由 RequestIDMiddleware 解析的客户端 IP"""
    return getattr(request.state, "client_ip", None) or (request.client.host if request.client else None)
