"""
购物车与优惠券仓储实现
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.cart.entity import Cart, CartItem, Coupon
from domain.cart.repository import CartRepository, CouponRepository
from domain.common.exceptions import CartItemNotFoundException, CartNotFoundException
from infrastructure.models.cart import CartItemModel, CartModel, CouponModel


class SQLAlchemyCartRepository(CartRepository):
    """购物车仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _item_to_entity(self, model: CartItemModel) -> CartItem:
        return CartItem(
            id=model.id,
            cart_id=model.cart_id,
            product_id=model.product_id,
            product_name=model.product_name,
            billing_cycle=model.billing_cycle,
            quantity=model.quantity,
            setup_fee=model.setup_fee,
            recurring_fee=model.recurring_fee,
            discount=model.discount,
            domain=model.domain,
            hostname=model.hostname,
            config_options=model.config_options or {},
            created_at=model.created_at,
        )

    def _apply_item(self, model: CartItemModel, item: CartItem) -> None:
        model.product_id = item.product_id
        model.product_name = item.product_name
        model.billing_cycle = item.billing_cycle
        model.quantity = item.quantity
        model.setup_fee = item.setup_fee
        model.recurring_fee = item.recurring_fee
        model.discount = item.discount
        model.total = item.total
        model.domain = item.domain
        model.hostname = item.hostname
        model.config_options = {str(k): v for k, v in item.config_options.items()}

    async def _load_items(self, cart_id: int) -> List[CartItem]:
        result = await self.session.execute(
            select(CartItemModel).where(CartItemModel.cart_id == cart_id).order_by(CartItemModel.id)
        )
        return [self._item_to_entity(m) for m in result.scalars().all()]

    async def _to_entity(self, model: CartModel) -> Cart:
        cart = Cart(
            id=model.id,
            customer_id=model.customer_id,
            session_id=model.session_id,
            currency=model.currency,
            coupon_id=model.coupon_id,
            expires_at=model.expires_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )
        cart.items = await self._load_items(model.id)
        return cart

    async def create(self, cart: Cart) -> Cart:
        model = CartModel(
            customer_id=cart.customer_id,
            session_id=cart.session_id,
            currency=cart.currency,
            coupon_id=cart.coupon_id,
            expires_at=cart.expires_at,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return await self._to_entity(model)

    async def get_by_id(self, cart_id: int, *, for_update: bool = False) -> Optional[Cart]:
        stmt = select(CartModel).where(CartModel.id == cart_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return await self._to_entity(model) if model else None

    async def _get_latest(self, *criteria) -> Optional[Cart]:
        result = await self.session.execute(
            select(CartModel).where(*criteria).order_by(CartModel.id.desc()).limit(1)
        )
        model = result.scalar_one_or_none()
        return await self._to_entity(model) if model else None

    async def get_by_customer(self, customer_id: int) -> Optional[Cart]:
        return await self._get_latest(CartModel.customer_id == customer_id)

    async def get_by_session(self, session_id: str) -> Optional[Cart]:
        return await self._get_latest(CartModel.session_id == session_id)

    async def update(self, cart: Cart) -> Cart:
        model = await self.session.get(CartModel, cart.id)
        if model is None:
            raise CartNotFoundException(cart.id)
        model.customer_id = cart.customer_id
        model.session_id = cart.session_id
        model.currency = cart.currency
        model.coupon_id = cart.coupon_id
        model.expires_at = cart.expires_at
        await self.session.flush()
        return cart

    async def add_item(self, item: CartItem) -> CartItem:
        model = CartItemModel(cart_id=item.cart_id)
        self._apply_item(model, item)
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._item_to_entity(model)

    async def update_item(self, item: CartItem) -> CartItem:
        model = await self.session.get(CartItemModel, item.id)
        if model is None:
            raise CartItemNotFoundException(item.id)
        model.cart_id = item.cart_id
        self._apply_item(model, item)
        await self.session.flush()
        return self._item_to_entity(model)

    async def delete_item(self, item_id: int) -> None:
        await self.session.execute(delete(CartItemModel).where(CartItemModel.id == item_id))

    async def clear_items(self, cart_id: int) -> None:
        await self.session.execute(delete(CartItemModel).where(CartItemModel.cart_id == cart_id))

    async def delete(self, cart_id: int) -> None:
        await self.clear_items(cart_id)
        await self.session.execute(delete(CartModel).where(CartModel.id == cart_id))

    async def delete_expired(self, now: datetime) -> int:
        result = await self.session.execute(
            select(CartModel.id).where(CartModel.expires_at.is_not(None), CartModel.expires_at < now)
        )
        expired_ids = list(result.scalars().all())
        if not expired_ids:
            return 0
        await self.session.execute(delete(CartItemModel).where(CartItemModel.cart_id.in_(expired_ids)))
        await self.session.execute(delete(CartModel).where(CartModel.id.in_(expired_ids)))
        return len(expired_ids)


class SQLAlchemyCouponRepository(CouponRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CouponModel) -> Coupon:
        return Coupon(
            id=model.id,
            code=model.code,
            coupon_type=model.coupon_type,
            amount=model.amount,
            status=model.status,
            max_uses=model.max_uses,
            current_uses=model.current_uses,
            product_ids=list(model.product_ids or []),
            starts_at=model.starts_at,
            expires_at=model.expires_at,
        )

    async def create(self, coupon: Coupon) -> Coupon:
        model = CouponModel(
            code=coupon.code,
            coupon_type=coupon.coupon_type.value,
            amount=coupon.amount,
            status=coupon.status.value,
            max_uses=coupon.max_uses,
            current_uses=coupon.current_uses,
            product_ids=list(coupon.product_ids),
            starts_at=coupon.starts_at,
            expires_at=coupon.expires_at,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def get_by_id(self, coupon_id: int, *, for_update: bool = False) -> Optional[Coupon]:
        stmt = select(CouponModel).where(CouponModel.id == coupon_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        result = await self.session.execute(select(CouponModel).where(CouponModel.code == code))
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def increment_usage(self, coupon_id: int) -> bool:
        result = await self.session.execute(
            update(CouponModel)
            .where(
                CouponModel.id == coupon_id,
                or_(CouponModel.max_uses.is_(None), CouponModel.current_uses < CouponModel.max_uses),
            )
            .values(current_uses=CouponModel.current_uses + 1)
        )
        return result.rowcount == 1
