"""
支付仓储接口 - 网关、支付请求、交易、余额调整、订阅、回调日志、支付方式与自动扣款
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import (
    AutoPaymentConfig,
    CreditAdjustment,
    GatewayWebhookLog,
    PaymentGateway,
    PaymentMethod,
    PaymentRequest,
    PaymentSubscription,
    Transaction,
)


class GatewayRepository(ABC):

    @abstractmethod
    async def create(self, gateway: PaymentGateway) -> PaymentGateway:
        pass

    @abstractmethod
    async def get_by_id(self, gateway_id: int) -> Optional[PaymentGateway]:
        pass

    @abstractmethod
    async def get_by_slug(self, slug: str) -> Optional[PaymentGateway]:
        pass

    @abstractmethod
    async def list_active(self) -> List[PaymentGateway]:
        """按 sort_order 排列的可见且启用的网关"""
        pass


class PaymentRequestRepository(ABC):

    @abstractmethod
    async def create(self, request: PaymentRequest) -> PaymentRequest:
        pass

    @abstractmethod
    async def get_by_id(self, request_id: int, *, for_update: bool = False) -> Optional[PaymentRequest]:
        pass

    @abstractmethod
    async def update(self, request: PaymentRequest) -> PaymentRequest:
        pass


class TransactionRepository(ABC):
    """交易流水只追加；仅允许更新累计退款与状态"""

    @abstractmethod
    async def create(self, transaction: Transaction) -> Transaction:
        pass

    @abstractmethod
    async def get_by_id(self, transaction_id: int, *, for_update: bool = False) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def update_refund_state(self, transaction: Transaction) -> Transaction:
        pass

    @abstractmethod
    async def list_refunds(self, transaction_id: int) -> List[Transaction]:
        pass

    @abstractmethod
    async def list_payments_for_invoice(self, invoice_id: int, *, for_update: bool = False) -> List[Transaction]:
        """账单下的付款流水（不含退款），按 id 升序"""
        pass

    @abstractmethod
    async def list_by_customer(self, customer_id: int, skip: int = 0, limit: int = 100) -> List[Transaction]:
        pass


class CreditAdjustmentRepository(ABC):

    @abstractmethod
    async def create(self, adjustment: CreditAdjustment) -> CreditAdjustment:
        pass

    @abstractmethod
    async def list_by_customer(self, customer_id: int, limit: int = 100) -> List[CreditAdjustment]:
        """按时间倒序（最新在前）"""
        pass


class SubscriptionRepository(ABC):

    @abstractmethod
    async def create(self, subscription: PaymentSubscription) -> PaymentSubscription:
        pass

    @abstractmethod
    async def get_by_id(self, subscription_id: int, *, for_update: bool = False) -> Optional[PaymentSubscription]:
        pass

    @abstractmethod
    async def update(self, subscription: PaymentSubscription) -> PaymentSubscription:
        pass


class GatewayWebhookLogRepository(ABC):

    @abstractmethod
    async def create(self, log: GatewayWebhookLog) -> GatewayWebhookLog:
        pass


class PaymentMethodRepository(ABC):

    @abstractmethod
    async def create(self, method: PaymentMethod) -> PaymentMethod:
        pass

    @abstractmethod
    async def get_for_customer(self, customer_id: int, method_id: int) -> Optional[PaymentMethod]:
        """仅返回属于该客户的支付方式"""
        pass

    @abstractmethod
    async def list_by_customer(self, customer_id: int) -> List[PaymentMethod]:
        """默认方式在前，其余按创建先后"""
        pass

    @abstractmethod
    async def clear_default(self, customer_id: int) -> None:
        pass

    @abstractmethod
    async def set_default(self, customer_id: int, method_id: int) -> bool:
        """返回是否命中该客户的支付方式"""
        pass

    @abstractmethod
    async def delete(self, customer_id: int, method_id: int) -> bool:
        pass


class AutoPaymentRepository(ABC):

    @abstractmethod
    async def get_by_customer(self, customer_id: int, *, for_update: bool = False) -> Optional[AutoPaymentConfig]:
        pass

    @abstractmethod
    async def save(self, config: AutoPaymentConfig) -> AutoPaymentConfig:
        """按 customer_id 新增或覆盖"""
        pass
