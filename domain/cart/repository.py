"""购物车与优惠券仓储接口"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from .entity import Cart, CartItem, Coupon


class CartRepository(ABC):
    """购物车仓储：返回的 Cart 已加载全部条目"""

    @abstractmethod
    async def create(self, cart: Cart) -> Cart:
        pass

    @abstractmethod
    async def get_by_id(self, cart_id: int, *, for_update: bool = False) -> Optional[Cart]:
        """for_update=True 时锁定购物车行，与结账互斥"""
        pass

    @abstractmethod
    async def get_by_customer(self, customer_id: int) -> Optional[Cart]:
        pass

    @abstractmethod
    async def get_by_session(self, session_id: str) -> Optional[Cart]:
        pass

    @abstractmethod
    async def update(self, cart: Cart) -> Cart:
        """更新购物车头信息（优惠券、过期时间、归属）"""
        pass

    @abstractmethod
    async def add_item(self, item: CartItem) -> CartItem:
        pass

    @abstractmethod
    async def update_item(self, item: CartItem) -> CartItem:
        pass

    @abstractmethod
    async def delete_item(self, item_id: int) -> None:
        pass

    @abstractmethod
    async def clear_items(self, cart_id: int) -> None:
        pass

    @abstractmethod
    async def delete(self, cart_id: int) -> None:
        """删除购物车及其条目"""
        pass

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        """删除已过期的购物车，返回删除数量"""
        pass


class CouponRepository(ABC):

    @abstractmethod
    async def create(self, coupon: Coupon) -> Coupon:
        pass

    @abstractmethod
    async def get_by_id(self, coupon_id: int, *, for_update: bool = False) -> Optional[Coupon]:
        pass

    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[Coupon]:
        pass

    @abstractmethod
    async def increment_usage(self, coupon_id: int) -> bool:
        """仅在未达 max_uses 时自增，返回是否成功"""
        pass
