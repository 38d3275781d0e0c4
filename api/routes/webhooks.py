"""
出站 Webhook 配置 API 路由
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from api.dependencies import get_webhook_service
from application.dto import MessageDTO, WebhookCreateDTO, WebhookDeliveryDTO, WebhookDTO
from application.services.webhook_service import WebhookService
from core.response import Response, success_response

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("", response_model=Response, status_code=status.HTTP_201_CREATED)
async def create_webhook(payload: WebhookCreateDTO, service: WebhookService = Depends(get_webhook_service)):
    webhook = await service.create_webhook(**payload.model_dump())
    return success_response(data=WebhookDTO.model_validate(webhook))


@router.get("", response_model=Response)
async def list_webhooks(
    customer_id: Optional[int] = Query(None),
    service: WebhookService = Depends(get_webhook_service),
):
    webhooks = await service.list_webhooks(customer_id)
    return success_response(data=[WebhookDTO.model_validate(w) for w in webhooks])


@router.get("/{webhook_id}", response_model=Response)
async def get_webhook(webhook_id: int, service: WebhookService = Depends(get_webhook_service)):
    return success_response(data=WebhookDTO.model_validate(await service.get_webhook(webhook_id)))


@router.delete("/{webhook_id}", response_model=Response)
async def delete_webhook(webhook_id: int, service: WebhookService = Depends(get_webhook_service)):
    await service.delete_webhook(webhook_id)
    return success_response(data=MessageDTO(message="Webhook deleted"))


@router.get("/{webhook_id}/deliveries", response_model=Response)
async def list_deliveries(
    webhook_id: int,
    limit: int = Query(50, ge=1, le=200),
    service: WebhookService = Depends(get_webhook_service),
):
    deliveries = await service.list_deliveries(webhook_id, limit)
    return success_response(data=[WebhookDeliveryDTO.model_validate(d) for d in deliveries])
