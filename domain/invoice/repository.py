"""账单仓储接口"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Collection, List, Optional

from .entity import Invoice, InvoiceStatus


class InvoiceRepository(ABC):

    @abstractmethod
    async def create(self, invoice: Invoice) -> Invoice:
        """持久化账单及其条目"""
        pass

    @abstractmethod
    async def get_by_id(self, invoice_id: int, *, for_update: bool = False) -> Optional[Invoice]:
        pass

    @abstractmethod
    async def get_by_number(self, invoice_number: str) -> Optional[Invoice]:
        pass

    @abstractmethod
    async def list_by_customer(
        self,
        customer_id: int,
        statuses: Optional[Collection[InvoiceStatus]] = None,
        skip: int = 0,
        limit: Optional[int] = 50,
    ) -> List[Invoice]:
        """按创建时间倒序；statuses 为空表示不过滤，limit 为 None 表示不分页"""
        pass

    @abstractmethod
    async def update(self, invoice: Invoice) -> Invoice:
        pass

    @abstractmethod
    async def mark_overdue(self, now: datetime) -> int:
        """未付且已过期的账单标记为 overdue，返回数量"""
        pass
