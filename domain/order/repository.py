"""订单与服务仓储接口"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import HostingService, Order, OrderItem, OrderStatus, ServiceStatus


class OrderRepository(ABC):
    """订单仓储：返回的 Order 已加载全部条目"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """持久化订单及其条目"""
        pass

    @abstractmethod
    async def get_by_id(self, order_id: int, *, for_update: bool = False) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_number(self, order_number: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def list_by_customer(
        self,
        customer_id: int,
        status: Optional[OrderStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Order]:
        pass

    @abstractmethod
    async def list_all(self, status: Optional[OrderStatus] = None, skip: int = 0, limit: int = 50) -> List[Order]:
        """后台订单列表，按创建时间倒序"""
        pass

    @abstractmethod
    async def update_status(self, order: Order) -> Order:
        """仅更新状态相关字段"""
        pass

    @abstractmethod
    async def set_item_service(self, item: OrderItem) -> None:
        """回填订单条目的 service_id"""
        pass


class ServiceRepository(ABC):

    @abstractmethod
    async def create(self, service: HostingService) -> HostingService:
        pass

    @abstractmethod
    async def get_by_id(self, service_id: int, *, for_update: bool = False) -> Optional[HostingService]:
        pass

    @abstractmethod
    async def update(self, service: HostingService) -> HostingService:
        pass

    @abstractmethod
    async def list_by_order(self, order_id: int) -> List[HostingService]:
        pass

    @abstractmethod
    async def list_by_customer(
        self, customer_id: int, status: Optional[ServiceStatus] = None
    ) -> List[HostingService]:
        pass

    @abstractmethod
    async def list_due(self, before: datetime, limit: int = 100) -> List[HostingService]:
        """状态为 active 且到期日早于 before 的服务，按到期日升序"""
        pass
