"""Infrastructure models package exports."""
from .base import Base, metadata
from .customer import CustomerModel
from .catalog import ConfigOptionModel, ConfigSubOptionModel, ProductModel, ProductPricingModel
from .tax import TaxRuleModel
from .cart import CartItemModel, CartModel, CouponModel
from .order import OrderItemModel, OrderModel, ServiceModel
from .invoice import InvoiceItemModel, InvoiceModel
from .payment import (
    AutoPaymentModel,
    CreditAdjustmentModel,
    GatewayWebhookLogModel,
    PaymentGatewayModel,
    PaymentMethodModel,
    PaymentRequestModel,
    PaymentSubscriptionModel,
    TransactionModel,
)
from .webhook import WebhookConfigModel, WebhookDeliveryModel
from .notification import NotificationModel, NotificationPreferenceModel

__all__ = [
    "Base",
    "metadata",
    "CustomerModel",
    "ProductModel",
    "ProductPricingModel",
    "ConfigOptionModel",
    "ConfigSubOptionModel",
    "TaxRuleModel",
    "CartModel",
    "CartItemModel",
    "CouponModel",
    "OrderModel",
    "OrderItemModel",
    "ServiceModel",
    "InvoiceModel",
    "InvoiceItemModel",
    "PaymentGatewayModel",
    "PaymentRequestModel",
    "TransactionModel",
    "CreditAdjustmentModel",
    "PaymentSubscriptionModel",
    "GatewayWebhookLogModel",
    "PaymentMethodModel",
    "AutoPaymentModel",
    "WebhookConfigModel",
    "WebhookDeliveryModel",
    "NotificationModel",
    "NotificationPreferenceModel",
]
