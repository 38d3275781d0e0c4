"""客户仓储接口"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Customer


class CustomerRepository(ABC):

    @abstractmethod
    async def create(self, customer: Customer) -> Customer:
        pass

    @abstractmethod
    async def get_by_id(self, customer_id: int, *, for_update: bool = False) -> Optional[Customer]:
        """for_update=True 时对客户行加行锁，串行化余额变更"""
        pass

    @abstractmethod
    async def update_credit(self, customer: Customer) -> Customer:
        pass
