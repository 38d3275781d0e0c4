"""
订单与托管服务 API 路由
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status

from api.dependencies import client_ip, get_order_service
from application.dto import (
    OrderCancelDTO,
    OrderCreateDTO,
    OrderDTO,
    PaginationParams,
    ServiceDTO,
    ServiceSuspendDTO,
)
from application.services.order_service import OrderService
from core.response import Response, success_response
from domain.order.entity import OrderStatus, ServiceStatus

router = APIRouter(tags=["Orders"])


@router.post("/orders", response_model=Response, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreateDTO,
    request: Request,
    service: OrderService = Depends(get_order_service),
):
    """结账：购物车 → 订单"""
    order = await service.create_order(
        payload.customer_id,
        payload.cart_id,
        ip_address=client_ip(request),
        notes=payload.notes,
    )
    return success_response(data=OrderDTO.model_validate(order), message="Order created")


@router.get("/orders/number/{order_number}", response_model=Response)
async def get_order_by_number(order_number: str, service: OrderService = Depends(get_order_service)):
    return success_response(data=OrderDTO.model_validate(await service.get_order_by_number(order_number)))


@router.get("/orders/{order_id}", response_model=Response)
async def get_order(order_id: int, service: OrderService = Depends(get_order_service)):
    return success_response(data=OrderDTO.model_validate(await service.get_order(order_id)))


@router.post("/orders/{order_id}/activate", response_model=Response)
async def activate_order(order_id: int, service: OrderService = Depends(get_order_service)):
    order = await service.activate_order(order_id)
    return success_response(data=OrderDTO.model_validate(order), message="Order activated")


@router.post("/orders/{order_id}/cancel", response_model=Response)
async def cancel_order(
    order_id: int,
    payload: OrderCancelDTO,
    service: OrderService = Depends(get_order_service),
):
    order = await service.cancel_order(order_id, payload.reason)
    return success_response(data=OrderDTO.model_validate(order), message="Order cancelled")


@router.get("/orders", response_model=Response)
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    pagination: PaginationParams = Depends(),
    service: OrderService = Depends(get_order_service),
):
    """后台订单列表"""
    orders = await service.list_all_orders(status_filter, skip=pagination.skip, limit=pagination.limit)
    return success_response(data=[OrderDTO.model_validate(o) for o in orders])


@router.get("/customers/{customer_id}/orders", response_model=Response)
async def list_customer_orders(
    customer_id: int,
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    pagination: PaginationParams = Depends(),
    service: OrderService = Depends(get_order_service),
):
    orders = await service.list_customer_orders(
        customer_id, status_filter, skip=pagination.skip, limit=pagination.limit
    )
    return success_response(data=[OrderDTO.model_validate(o) for o in orders])


@router.get("/customers/{customer_id}/services", response_model=Response, tags=["Services"])
async def list_customer_services(
    customer_id: int,
    status_filter: Optional[ServiceStatus] = Query(None, alias="status"),
    service: OrderService = Depends(get_order_service),
):
    services = await service.list_customer_services(customer_id, status_filter)
    return success_response(data=[ServiceDTO.model_validate(s) for s in services])


@router.get("/services/{service_id}", response_model=Response, tags=["Services"])
async def get_service(service_id: int, service: OrderService = Depends(get_order_service)):
    return success_response(data=ServiceDTO.model_validate(await service.get_service(service_id)))


@router.post("/services/{service_id}/suspend", response_model=Response, tags=["Services"])
async def suspend_service(
    service_id: int,
    payload: ServiceSuspendDTO,
    service: OrderService = Depends(get_order_service),
):
    return success_response(data=ServiceDTO.model_validate(await service.suspend_service(service_id, payload.reason)))


@router.post("/services/{service_id}/unsuspend", response_model=Response, tags=["Services"])
async def unsuspend_service(service_id: int, service: OrderService = Depends(get_order_service)):
    return success_response(data=ServiceDTO.model_validate(await service.unsuspend_service(service_id)))


@router.post("/services/{service_id}/terminate", response_model=Response, tags=["Services"])
async def terminate_service(service_id: int, service: OrderService = Depends(get_order_service)):
    return success_response(data=ServiceDTO.model_validate(await service.terminate_service(service_id)))


@router.post("/services/{service_id}/renew", response_model=Response, tags=["Services"])
async def renew_service(service_id: int, service: OrderService = Depends(get_order_service)):
    return success_response(data=ServiceDTO.model_validate(await service.renew_service(service_id)))
