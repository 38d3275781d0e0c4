"""
通知 API 路由
"""
from fastapi import APIRouter, Depends, Query, status

from api.dependencies import get_notification_service
from application.dto import NotificationDTO, NotificationSendDTO
from application.services.notification_service import NotificationService
from core.response import Response, success_response

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.post("", response_model=Response, status_code=status.HTTP_201_CREATED)
async def send_notification(
    payload: NotificationSendDTO,
    service: NotificationService = Depends(get_notification_service),
):
    notification = await service.send_notification(
        payload.customer_id,
        payload.notification_type,
        payload.title,
        payload.message,
        payload.link,
    )
    return success_response(data=NotificationDTO.model_validate(notification))


@router.get("/unread", response_model=Response)
async def list_unread(
    customer_id: int = Query(...),
    limit: int = Query(50, ge=1, le=200),
    service: NotificationService = Depends(get_notification_service),
):
    notifications = await service.list_unread(customer_id, limit)
    return success_response(data=[NotificationDTO.model_validate(n) for n in notifications])


@router.post("/read-all", response_model=Response)
async def mark_all_read(
    customer_id: int = Query(...),
    service: NotificationService = Depends(get_notification_service),
):
    count = await service.mark_all_read(customer_id)
    return success_response(data={"updated": count})


@router.post("/{notification_id}/read", response_model=Response)
async def mark_read(
    notification_id: int,
    customer_id: int = Query(...),
    service: NotificationService = Depends(get_notification_service),
):
    notification = await service.mark_read(notification_id, customer_id)
    return success_response(data=NotificationDTO.model_validate(notification))
