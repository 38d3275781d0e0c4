"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。

异常按种类分层：NotFound / Validation / StateConflict / Configuration /
ExternalService / Authentication，具体异常继承对应种类，便于调用方按种类捕获。
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# NotFound
# ---------------------------------------------------------------------------


class ResourceNotFoundException(BusinessException):
    """资源不存在"""

    resource = "Resource"

    def __init__(self, identifier: Any = None, *, field: Optional[str] = None):
        details = {"id": str(identifier)} if identifier is not None else None
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message=f"{self.resource} not found",
            error_type=f"{self.resource.replace(' ', '')}NotFound",
            details=details,
            field=field,
        )


class CustomerNotFoundException(ResourceNotFoundException):
    resource = "Customer"


class ProductNotFoundException(ResourceNotFoundException):
    resource = "Product"


class PricingNotFoundException(ResourceNotFoundException):
    resource = "Pricing"


class CartNotFoundException(ResourceNotFoundException):
    resource = "Cart"


class CartItemNotFoundException(ResourceNotFoundException):
    resource = "Cart item"


class OrderNotFoundException(ResourceNotFoundException):
    resource = "Order"


class ServiceNotFoundException(ResourceNotFoundException):
    resource = "Service"


class InvoiceNotFoundException(ResourceNotFoundException):
    resource = "Invoice"


class GatewayNotFoundException(ResourceNotFoundException):
    resource = "Gateway"


class PaymentRequestNotFoundException(ResourceNotFoundException):
    resource = "Payment request"


class TransactionNotFoundException(ResourceNotFoundException):
    resource = "Transaction"


class SubscriptionNotFoundException(ResourceNotFoundException):
    resource = "Subscription"


class PaymentMethodNotFoundException(ResourceNotFoundException):
    resource = "Payment method"


class WebhookNotFoundException(ResourceNotFoundException):
    resource = "Webhook"


class NotificationNotFoundException(ResourceNotFoundException):
    resource = "Notification"


# ---------------------------------------------------------------------------
# ValidationFailure
# ---------------------------------------------------------------------------


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
        code: int = BusinessCode.PARAM_VALIDATION_ERROR,
        error_type: str = "DomainValidationError",
    ):
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=details,
            field=field,
        )


class InvalidAmountException(DomainValidationException):
    def __init__(self, amount: Any, *, field: str = "amount"):
        super().__init__(
            "Amount must be greater than zero",
            field=field,
            details={"amount": str(amount)},
            code=BusinessCode.INVALID_AMOUNT,
            error_type="InvalidAmount",
        )


class InvalidBillingCycleException(DomainValidationException):
    def __init__(self, billing_cycle: str, *, product_id: Optional[int] = None):
        details: dict = {"billing_cycle": billing_cycle}
        if product_id is not None:
            details["product_id"] = product_id
        super().__init__(
            f"Billing cycle '{billing_cycle}' is not available",
            field="billing_cycle",
            details=details,
            code=BusinessCode.INVALID_BILLING_CYCLE,
            error_type="InvalidBillingCycle",
        )


class CartEmptyException(DomainValidationException):
    def __init__(self, cart_id: Optional[int] = None):
        super().__init__(
            "Cart is empty",
            details={"cart_id": cart_id} if cart_id is not None else None,
            code=BusinessCode.CART_EMPTY,
            error_type="CartEmpty",
        )


class CurrencyMismatchException(DomainValidationException):
    def __init__(self, expected: str, actual: str):
        super().__init__(
            "Currency mismatch",
            field="currency",
            details={"expected": expected, "actual": actual},
            code=BusinessCode.CURRENCY_MISMATCH,
            error_type="CurrencyMismatch",
        )


class InvalidCouponException(DomainValidationException):
    def __init__(self, code: str, reason: str = "invalid"):
        super().__init__(
            "Invalid or expired coupon",
            field="code",
            details={"code": code, "reason": reason},
            code=BusinessCode.INVALID_COUPON,
            error_type="InvalidCoupon",
        )


# ---------------------------------------------------------------------------
# StateConflict
# ---------------------------------------------------------------------------


class StateConflictException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        code: int = BusinessCode.STATE_CONFLICT,
        error_type: str = "StateConflict",
        details: Optional[dict] = None,
    ):
        super().__init__(code=code, message=message, error_type=error_type, details=details)


class InvalidStateTransitionException(StateConflictException):
    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            f"{entity} cannot transition from {current} to {target}",
            error_type="InvalidStateTransition",
            details={"entity": entity, "current": current, "target": target},
        )


class InsufficientBalanceException(StateConflictException):
    def __init__(self, available: Decimal, required: Decimal):
        super().__init__(
            "Insufficient credit balance",
            code=BusinessCode.INSUFFICIENT_BALANCE,
            error_type="InsufficientBalance",
            details={"available": str(available), "required": str(required)},
        )


class TransactionNotRefundableException(StateConflictException):
    def __init__(self, transaction_id: int):
        super().__init__(
            "Transaction cannot be refunded",
            code=BusinessCode.TRANSACTION_NOT_REFUNDABLE,
            error_type="TransactionNotRefundable",
            details={"transaction_id": transaction_id},
        )


class RefundExceedsRemainingException(StateConflictException):
    def __init__(self, requested: Decimal, remaining: Decimal):
        super().__init__(
            "Refund amount exceeds remaining refundable amount",
            code=BusinessCode.REFUND_EXCEEDS_REMAINING,
            error_type="RefundExceedsRemaining",
            details={"requested": str(requested), "remaining": str(remaining)},
        )


class PaymentRequestExpiredException(StateConflictException):
    def __init__(self, request_id: int):
        super().__init__(
            "Payment request has expired",
            code=BusinessCode.PAYMENT_REQUEST_EXPIRED,
            error_type="PaymentRequestExpired",
            details={"request_id": request_id},
        )


# ---------------------------------------------------------------------------
# ConfigurationError
# ---------------------------------------------------------------------------


class ConfigurationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        code: int = BusinessCode.CONFIGURATION_ERROR,
        error_type: str = "ConfigurationError",
        details: Optional[dict] = None,
    ):
        super().__init__(code=code, message=message, error_type=error_type, details=details)


class ProcessorNotRegisteredException(ConfigurationException):
    def __init__(self, slug: str):
        super().__init__(
            f"No payment processor registered for gateway '{slug}'",
            code=PaymentCode.PROCESSOR_NOT_REGISTERED,
            error_type="ProcessorNotRegistered",
            details={"gateway": slug},
        )


class GatewayInactiveException(ConfigurationException):
    def __init__(self, slug: str):
        super().__init__(
            f"Payment gateway '{slug}' is not active",
            code=PaymentCode.GATEWAY_INACTIVE,
            error_type="GatewayInactive",
            details={"gateway": slug},
        )


class RecurringNotSupportedException(ConfigurationException):
    def __init__(self, slug: str):
        super().__init__(
            f"Payment gateway '{slug}' does not support recurring payments",
            code=PaymentCode.RECURRING_NOT_SUPPORTED,
            error_type="RecurringNotSupported",
            details={"gateway": slug},
        )


class RefundNotSupportedException(ConfigurationException):
    def __init__(self, slug: str):
        super().__init__(
            f"Payment gateway '{slug}' does not support refunds",
            code=PaymentCode.REFUND_NOT_SUPPORTED,
            error_type="RefundNotSupported",
            details={"gateway": slug},
        )


# ---------------------------------------------------------------------------
# ExternalFailure
# ---------------------------------------------------------------------------


class ExternalServiceException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        code: int = BusinessCode.NETWORK_ERROR,
        error_type: str = "ExternalServiceError",
        details: Optional[dict] = None,
    ):
        super().__init__(code=code, message=message, error_type=error_type, details=details)


class PaymentGatewayError(ExternalServiceException):
    """支付处理器调用失败"""

    def __init__(self, message: str, *, gateway: Optional[str] = None, details: Optional[dict] = None):
        merged = dict(details or {})
        if gateway:
            merged["gateway"] = gateway
        super().__init__(
            message,
            code=PaymentCode.PROVIDER_ERROR,
            error_type="PaymentGatewayError",
            details=merged or None,
        )


# ---------------------------------------------------------------------------
# AuthenticationFailure
# ---------------------------------------------------------------------------


class AuthenticationException(BusinessException):
    def __init__(self, message: str, *, code: int = BusinessCode.UNAUTHORIZED, error_type: str = "AuthenticationError", details: Optional[dict] = None):
        super().__init__(code=code, message=message, error_type=error_type, details=details)


class InvalidWebhookSignatureException(AuthenticationException):
    def __init__(self, gateway: str):
        super().__init__(
            "Invalid webhook signature",
            code=PaymentCode.SIGNATURE_ERROR,
            error_type="InvalidWebhookSignature",
            details={"gateway": gateway},
        )
