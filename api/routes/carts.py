"""
购物车 API 路由
"""
from fastapi import APIRouter, Depends, status

from api.dependencies import get_cart_service
from application.dto import (
    CartCreateDTO,
    CartItemAddDTO,
    CartItemDTO,
    CartItemUpdateDTO,
    CartMergeDTO,
    CouponApplyDTO,
    MessageDTO,
)
from application.services.cart_service import CartService
from core.response import Response, success_response

router = APIRouter(prefix="/carts", tags=["Carts"])


@router.post("", response_model=Response, status_code=status.HTTP_201_CREATED)
async def get_or_create_cart(payload: CartCreateDTO, service: CartService = Depends(get_cart_service)):
    """获取或创建购物车（客户或匿名会话）"""
    cart = await service.get_or_create_cart(
        customer_id=payload.customer_id,
        session_id=payload.session_id,
        currency=payload.currency,
    )
    return success_response(data=await service.get_cart_summary(cart.id))


@router.post("/merge", response_model=Response)
async def merge_cart(payload: CartMergeDTO, service: CartService = Depends(get_cart_service)):
    """登录后合并匿名购物车"""
    cart = await service.merge_cart(payload.session_id, payload.customer_id)
    return success_response(data=await service.get_cart_summary(cart.id))


@router.get("/{cart_id}", response_model=Response)
async def get_cart_summary(cart_id: int, service: CartService = Depends(get_cart_service)):
    return success_response(data=await service.get_cart_summary(cart_id))


@router.post("/{cart_id}/items", response_model=Response, status_code=status.HTTP_201_CREATED)
async def add_item(cart_id: int, payload: CartItemAddDTO, service: CartService = Depends(get_cart_service)):
    item = await service.add_item(
        cart_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
        billing_cycle=payload.billing_cycle,
        domain=payload.domain,
        hostname=payload.hostname,
        config_options=payload.config_options,
    )
    return success_response(data=CartItemDTO.model_validate(item))


@router.patch("/{cart_id}/items/{item_id}", response_model=Response)
async def update_item(
    cart_id: int,
    item_id: int,
    payload: CartItemUpdateDTO,
    service: CartService = Depends(get_cart_service),
):
    """修改数量，0 表示移除"""
    item = await service.update_item(cart_id, item_id, payload.quantity)
    if item is None:
        return success_response(data=MessageDTO(message="Item removed"))
    return success_response(data=CartItemDTO.model_validate(item))


@router.delete("/{cart_id}/items/{item_id}", response_model=Response)
async def remove_item(cart_id: int, item_id: int, service: CartService = Depends(get_cart_service)):
    await service.remove_item(cart_id, item_id)
    return success_response(data=MessageDTO(message="Item removed"))


@router.post("/{cart_id}/coupon", response_model=Response)
async def apply_coupon(cart_id: int, payload: CouponApplyDTO, service: CartService = Depends(get_cart_service)):
    await service.apply_coupon(cart_id, payload.code)
    return success_response(data=await service.get_cart_summary(cart_id))


@router.delete("/{cart_id}/coupon", response_model=Response)
async def remove_coupon(cart_id: int, service: CartService = Depends(get_cart_service)):
    await service.remove_coupon(cart_id)
    return success_response(data=await service.get_cart_summary(cart_id))


@router.delete("/{cart_id}", response_model=Response)
async def clear_cart(cart_id: int, service: CartService = Depends(get_cart_service)):
    await service.clear_cart(cart_id)
    return success_response(data=MessageDTO(message="Cart cleared"))
