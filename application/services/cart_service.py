"""
购物车应用服务（application/services）- 定价、条目维护、优惠券与汇总

所有修改条目的操作都会对购物车行加锁，与结账互斥。
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from application.dto import CartItemDTO, CartSummaryDTO
from application.services.tax_service import TaxCalculator
from core.config import settings
from core.logging_config import get_logger
from domain.cart.entity import Cart, CartItem, Coupon
from domain.catalog.billing_cycle import BillingCycle
from domain.catalog.entity import price_config_options
from domain.common.exceptions import (
    CartItemNotFoundException,
    CartNotFoundException,
    CurrencyMismatchException,
    InvalidBillingCycleException,
    InvalidCouponException,
    PricingNotFoundException,
    ProductNotFoundException,
)
from domain.common.money import ZERO
from domain.common.timeutil import utc_now
from domain.common.unit_of_work import AbstractUnitOfWork

logger = get_logger(__name__)


class CartService:
    """购物车应用服务"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        ttl: Optional[timedelta] = None,
        default_currency: Optional[str] = None,
    ):
        self._uow_factory = uow_factory
        self._ttl = ttl or timedelta(days=settings.cart.expiry_days)
        self._default_currency = default_currency or settings.cart.default_currency

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    async def _load_cart(self, uow: AbstractUnitOfWork, cart_id: int, *, for_update: bool = False) -> Cart:
        cart = await uow.cart_repository.get_by_id(cart_id, for_update=for_update)
        if cart is None or cart.is_expired():
            raise CartNotFoundException(cart_id)
        return cart

    async def _active_coupon(self, uow: AbstractUnitOfWork, cart: Cart) -> Optional[Coupon]:
        if cart.coupon_id is None:
            return None
        coupon = await uow.coupon_repository.get_by_id(cart.coupon_id)
        if coupon is None or not coupon.is_valid():
            return None
        return coupon

    async def _touch(self, uow: AbstractUnitOfWork, cart: Cart) -> None:
        now = utc_now()
        cart.updated_at = now
        cart.expires_at = now + self._ttl
        await uow.cart_repository.update(cart)

    async def _open_cart(
        self,
        uow: AbstractUnitOfWork,
        *,
        customer_id: Optional[int],
        session_id: Optional[str],
        currency: Optional[str],
    ) -> Cart:
        if customer_id is not None:
            cart = await uow.cart_repository.get_by_customer(customer_id)
        else:
            cart = await uow.cart_repository.get_by_session(session_id or "")
        if cart is not None and not cart.is_expired():
            return cart
        if cart is not None:
            await uow.cart_repository.delete(cart.id)
        cart = await uow.cart_repository.create(
            Cart.open(
                customer_id=customer_id,
                session_id=session_id,
                currency=currency or self._default_currency,
                ttl=self._ttl,
            )
        )
        logger.info("cart_created", cart_id=cart.id, customer_id=customer_id, session_id=session_id)
        return cart

    # ------------------------------------------------------------------
    # use cases
    # ------------------------------------------------------------------
    async def get_or_create_cart(
        self,
        *,
        customer_id: Optional[int] = None,
        session_id: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> Cart:
        # 归属校验交给 Cart 实体，这里提前拦截便于返回清晰错误
        Cart(id=None, customer_id=customer_id, session_id=session_id)
        async with self._uow_factory() as uow:
            return await self._open_cart(uow, customer_id=customer_id, session_id=session_id, currency=currency)

    async def get_cart(self, cart_id: int) -> Cart:
        async with self._uow_factory(readonly=True) as uow:
            return await self._load_cart(uow, cart_id)

    async def add_item(
        self,
        cart_id: int,
        *,
        product_id: int,
        quantity: int = 1,
        billing_cycle: Optional[str] = None,
        domain: Optional[str] = None,
        hostname: Optional[str] = None,
        config_options: Optional[Dict[int, int]] = None,
    ) -> CartItem:
        """按产品定价加入条目；同一产品 + 周期 + 配置已存在时累加数量"""
        quantity = quantity if quantity and quantity > 0 else 1
        cycle = BillingCycle.parse(billing_cycle or BillingCycle.MONTHLY.value)
        if cycle is None:
            logger.warning("unknown_billing_cycle", billing_cycle=billing_cycle, product_id=product_id)
            raise InvalidBillingCycleException(billing_cycle or "", product_id=product_id)
        selected = {int(k): int(v) for k, v in (config_options or {}).items()}

        async with self._uow_factory() as uow:
            cart = await self._load_cart(uow, cart_id, for_update=True)

            product = await uow.catalog_repository.get_product(product_id)
            if product is None or not product.active:
                raise ProductNotFoundException(product_id)
            pricing = await uow.catalog_repository.get_pricing(product_id, cart.currency)
            if pricing is None:
                raise PricingNotFoundException(product_id)
            if not pricing.is_enabled(cycle):
                raise InvalidBillingCycleException(cycle.value, product_id=product_id)

            extra_setup, extra_recurring = ZERO, ZERO
            if selected:
                options = await uow.catalog_repository.list_config_options(product_id)
                extra_setup, extra_recurring = price_config_options(options, selected, cycle)

            candidate = CartItem(
                id=None,
                cart_id=cart.id,
                product_id=product_id,
                product_name=product.name,
                billing_cycle=cycle.value,
                quantity=quantity,
                setup_fee=pricing.setup_fee + extra_setup,
                recurring_fee=pricing.recurring_fee(cycle) + extra_recurring,
                domain=domain,
                hostname=hostname,
                config_options=selected,
                created_at=utc_now(),
            )

            coupon = await self._active_coupon(uow, cart)
            existing = cart.find_same_line(candidate)
            if existing is not None:
                existing.change_quantity(existing.quantity + quantity)
                if coupon is not None:
                    existing.apply_discount(coupon.discount_for(existing))
                item = await uow.cart_repository.update_item(existing)
            else:
                if coupon is not None:
                    candidate.apply_discount(coupon.discount_for(candidate))
                item = await uow.cart_repository.add_item(candidate)
            await self._touch(uow, cart)

        logger.info(
            "cart_item_added",
            cart_id=cart_id,
            item_id=item.id,
            product_id=product_id,
            billing_cycle=cycle.value,
            quantity=item.quantity,
            merged=existing is not None,
        )
        return item

    async def update_item(self, cart_id: int, item_id: int, quantity: int) -> Optional[CartItem]:
        """修改数量；数量为 0（或更小）时移除条目并返回 None"""
        async with self._uow_factory() as uow:
            cart = await self._load_cart(uow, cart_id, for_update=True)
            item = cart.find_item(item_id)
            if item is None:
                raise CartItemNotFoundException(item_id)
            if quantity <= 0:
                await uow.cart_repository.delete_item(item_id)
                await self._touch(uow, cart)
                logger.info("cart_item_removed", cart_id=cart_id, item_id=item_id)
                return None
            item.change_quantity(quantity)
            coupon = await self._active_coupon(uow, cart)
            item.apply_discount(coupon.discount_for(item) if coupon else ZERO)
            updated = await uow.cart_repository.update_item(item)
            await self._touch(uow, cart)
        logger.info("cart_item_updated", cart_id=cart_id, item_id=item_id, quantity=quantity)
        return updated

    async def remove_item(self, cart_id: int, item_id: int) -> None:
        async with self._uow_factory() as uow:
            cart = await self._load_cart(uow, cart_id, for_update=True)
            if cart.find_item(item_id) is None:
                raise CartItemNotFoundException(item_id)
            await uow.cart_repository.delete_item(item_id)
            await self._touch(uow, cart)
        logger.info("cart_item_removed", cart_id=cart_id, item_id=item_id)

    async def apply_coupon(self, cart_id: int, code: str) -> Cart:
        code = (code or "").strip()
        async with self._uow_factory() as uow:
            cart = await self._load_cart(uow, cart_id, for_update=True)
            coupon = await uow.coupon_repository.get_by_code(code) if code else None
            if coupon is None:
                raise InvalidCouponException(code, "not_found")
            reason = coupon.invalid_reason()
            if reason is not None:
                raise InvalidCouponException(code, reason)
            cart.apply_coupon(coupon)
            for item in cart.items:
                await uow.cart_repository.update_item(item)
            await self._touch(uow, cart)
        logger.info("coupon_applied", cart_id=cart_id, coupon_id=coupon.id, discount=str(cart.total_discount))
        return cart

    async def remove_coupon(self, cart_id: int) -> Cart:
        async with self._uow_factory() as uow:
            cart = await self._load_cart(uow, cart_id, for_update=True)
            cart.apply_coupon(None)
            for item in cart.items:
                await uow.cart_repository.update_item(item)
            await self._touch(uow, cart)
        logger.info("coupon_removed", cart_id=cart_id)
        return cart

    async def clear_cart(self, cart_id: int) -> None:
        async with self._uow_factory() as uow:
            cart = await self._load_cart(uow, cart_id, for_update=True)
            await uow.cart_repository.clear_items(cart.id)
            cart.items = []
            cart.coupon_id = None
            await self._touch(uow, cart)
        logger.info("cart_cleared", cart_id=cart_id)

    async def merge_cart(self, session_id: str, customer_id: int) -> Cart:
        """登录后把匿名购物车合并进客户购物车，匿名购物车随后删除"""
        async with self._uow_factory() as uow:
            guest = await uow.cart_repository.get_by_session(session_id)
            target = await self._open_cart(
                uow,
                customer_id=customer_id,
                session_id=None,
                currency=guest.currency if guest else None,
            )
            if guest is None or guest.is_expired() or guest.is_empty():
                if guest is not None:
                    await uow.cart_repository.delete(guest.id)
                return target
            target = await self._load_cart(uow, target.id, for_update=True)
            if target.currency != guest.currency:
                raise CurrencyMismatchException(target.currency, guest.currency)
            if target.coupon_id is None:
                target.coupon_id = guest.coupon_id

            for item in guest.items:
                existing = target.find_same_line(item)
                if existing is not None:
                    existing.change_quantity(existing.quantity + item.quantity)
                else:
                    item.cart_id = target.id
                    target.items.append(item)

            target.apply_coupon(await self._active_coupon(uow, target))
            for item in target.items:
                await uow.cart_repository.update_item(item)
            await uow.cart_repository.delete(guest.id)
            await self._touch(uow, target)
            merged = await self._load_cart(uow, target.id)

        logger.info("cart_merged", session_id=session_id, customer_id=customer_id, cart_id=merged.id)
        return merged

    async def cleanup_expired_carts(self, now: Optional[datetime] = None) -> int:
        async with self._uow_factory() as uow:
            removed = await uow.cart_repository.delete_expired(now or utc_now())
        if removed:
            logger.info("expired_carts_removed", count=removed)
        return removed

    async def get_cart_summary(self, cart_id: int) -> CartSummaryDTO:
        """纯读取：小计、折扣、税额与总计每次都重新计算"""
        async with self._uow_factory(readonly=True) as uow:
            cart = await self._load_cart(uow, cart_id)
            coupon_code = None
            if cart.coupon_id is not None:
                coupon = await uow.coupon_repository.get_by_id(cart.coupon_id)
                coupon_code = coupon.code if coupon else None

            subtotal = cart.subtotal
            discount = cart.total_discount
            taxable = subtotal - discount
            tax = ZERO
            if cart.customer_id is not None:
                breakdown = await TaxCalculator(uow.customer_repository, uow.tax_rule_repository).for_customer(
                    cart.customer_id, taxable
                )
                tax = breakdown.tax

        return CartSummaryDTO(
            cart_id=cart.id,
            currency=cart.currency,
            items=[CartItemDTO.model_validate(item) for item in cart.items],
            subtotal=subtotal,
            total_discount=discount,
            tax=tax,
            total=taxable + tax,
            coupon_code=coupon_code,
        )
