"""
Payments API routes.

Gateways, payment requests, credit balance, refunds, subscriptions, saved
payment methods, auto-payment and the inbound gateway webhook. Keep this
thin: no SDK details here.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from api.dependencies import client_ip, get_payment_service
from application.dto import (
    AutoPaymentDTO,
    CreditAdjustmentDTO,
    GatewayDTO,
    MessageDTO,
    PaginationParams,
    PaymentMethodDTO,
    PaymentRequestDTO,
    SubscriptionDTO,
    TransactionDTO,
)
from application.dtos.payments import (
    AddCreditIn,
    CancelSubscriptionIn,
    CardDetails,
    CreatePaymentRequestIn,
    CreateSubscriptionIn,
    PayWithCreditIn,
    ProcessPaymentIn,
    RefundIn,
    SavePaymentMethodIn,
    SetupAutoPaymentIn,
)
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from core.response import Response, success_response

router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)

# 各网关签名头，按顺序取第一个存在的
SIGNATURE_HEADERS = ("Stripe-Signature", "X-Signature", "X-Webhook-Signature")


@router.get("/gateways", response_model=Response)
async def list_gateways(service: PaymentService = Depends(get_payment_service)):
    gateways = await service.list_active_gateways()
    return success_response(data=[GatewayDTO.model_validate(g) for g in gateways])


@router.post("/gateways/{slug}/tokenize", response_model=Response)
async def tokenize_card(slug: str, card: CardDetails, service: PaymentService = Depends(get_payment_service)):
    token = await service.tokenize_card(slug, card)
    return success_response(data={"token": token})


@router.post("/requests", response_model=Response, status_code=status.HTTP_201_CREATED)
async def create_payment_request(
    payload: CreatePaymentRequestIn,
    request: Request,
    service: PaymentService = Depends(get_payment_service),
):
    payment_request = await service.create_payment_request(
        customer_id=payload.customer_id,
        gateway_slug=payload.gateway,
        amount=payload.amount,
        currency=payload.currency,
        invoice_id=payload.invoice_id,
        ip_address=client_ip(request),
    )
    return success_response(data=PaymentRequestDTO.model_validate(payment_request))


@router.get("/requests/{request_id}", response_model=Response)
async def get_payment_request(request_id: int, service: PaymentService = Depends(get_payment_service)):
    return success_response(data=PaymentRequestDTO.model_validate(await service.get_payment_request(request_id)))


@router.post("/requests/{request_id}/process", response_model=Response)
async def process_payment(
    request_id: int,
    payload: ProcessPaymentIn,
    service: PaymentService = Depends(get_payment_service),
):
    payment_request = await service.process_payment(request_id, card_token=payload.card_token)
    return success_response(data=PaymentRequestDTO.model_validate(payment_request))


@router.get("/requests/{request_id}/url", response_model=Response)
async def get_payment_url(request_id: int, service: PaymentService = Depends(get_payment_service)):
    return success_response(data={"url": await service.get_payment_url(request_id)})


@router.post("/credit/pay", response_model=Response, status_code=status.HTTP_201_CREATED)
async def pay_with_credit(payload: PayWithCreditIn, service: PaymentService = Depends(get_payment_service)):
    transaction = await service.pay_with_credit(payload.customer_id, payload.invoice_id, payload.amount)
    return success_response(data=TransactionDTO.model_validate(transaction))


@router.post("/customers/{customer_id}/credit", response_model=Response, status_code=status.HTTP_201_CREATED)
async def add_credit(customer_id: int, payload: AddCreditIn, service: PaymentService = Depends(get_payment_service)):
    adjustment = await service.add_credit(
        customer_id,
        payload.amount,
        currency=payload.currency,
        reason=payload.reason,
        staff_id=payload.staff_id,
    )
    return success_response(data=CreditAdjustmentDTO.model_validate(adjustment))


@router.get("/customers/{customer_id}/credit", response_model=Response)
async def get_credit_history(customer_id: int, service: PaymentService = Depends(get_payment_service)):
    history = await service.get_credit_history(customer_id)
    return success_response(data=[CreditAdjustmentDTO.model_validate(a) for a in history])


@router.get("/customers/{customer_id}/transactions", response_model=Response)
async def list_customer_transactions(
    customer_id: int,
    pagination: PaginationParams = Depends(),
    service: PaymentService = Depends(get_payment_service),
):
    transactions = await service.list_customer_transactions(customer_id, skip=pagination.skip, limit=pagination.limit)
    return success_response(data=[TransactionDTO.model_validate(t) for t in transactions])


@router.get("/transactions/{transaction_id}", response_model=Response)
async def get_transaction(transaction_id: int, service: PaymentService = Depends(get_payment_service)):
    return success_response(data=TransactionDTO.model_validate(await service.get_transaction(transaction_id)))


@router.post("/transactions/{transaction_id}/refund", response_model=Response, status_code=status.HTTP_201_CREATED)
async def refund_transaction(
    transaction_id: int,
    payload: RefundIn,
    service: PaymentService = Depends(get_payment_service),
):
    refund = await service.process_refund(
        transaction_id,
        payload.amount,
        reason=payload.reason,
        staff_id=payload.staff_id,
        via_gateway=payload.via_gateway,
    )
    return success_response(data=TransactionDTO.model_validate(refund))


@router.post("/subscriptions", response_model=Response, status_code=status.HTTP_201_CREATED)
async def create_subscription(payload: CreateSubscriptionIn, service: PaymentService = Depends(get_payment_service)):
    subscription = await service.create_subscription(
        customer_id=payload.customer_id,
        gateway_slug=payload.gateway,
        amount=payload.amount,
        currency=payload.currency,
        interval=payload.interval,
        interval_count=payload.interval_count,
        service_id=payload.service_id,
        payment_method=payload.payment_method,
    )
    return success_response(data=SubscriptionDTO.model_validate(subscription))


@router.post("/subscriptions/{subscription_id}/cancel", response_model=Response)
async def cancel_subscription(
    subscription_id: int,
    payload: CancelSubscriptionIn,
    service: PaymentService = Depends(get_payment_service),
):
    subscription = await service.cancel_subscription(subscription_id, immediately=payload.immediately)
    return success_response(data=SubscriptionDTO.model_validate(subscription))


@router.post("/customers/{customer_id}/methods", response_model=Response, status_code=status.HTTP_201_CREATED)
async def save_payment_method(
    customer_id: int,
    payload: SavePaymentMethodIn,
    service: PaymentService = Depends(get_payment_service),
):
    method = await service.save_payment_method(customer_id, **payload.model_dump())
    return success_response(data=PaymentMethodDTO.model_validate(method))


@router.get("/customers/{customer_id}/methods", response_model=Response)
async def list_payment_methods(customer_id: int, service: PaymentService = Depends(get_payment_service)):
    methods = await service.list_payment_methods(customer_id)
    return success_response(data=[PaymentMethodDTO.model_validate(m) for m in methods])


@router.post("/customers/{customer_id}/methods/{method_id}/default", response_model=Response)
async def set_default_payment_method(
    customer_id: int,
    method_id: int,
    service: PaymentService = Depends(get_payment_service),
):
    method = await service.set_default_payment_method(customer_id, method_id)
    return success_response(data=PaymentMethodDTO.model_validate(method))


@router.delete("/customers/{customer_id}/methods/{method_id}", response_model=Response)
async def delete_payment_method(
    customer_id: int,
    method_id: int,
    service: PaymentService = Depends(get_payment_service),
):
    await service.delete_payment_method(customer_id, method_id)
    return success_response(data=MessageDTO(message="Payment method deleted"))


@router.get("/customers/{customer_id}/auto-payment", response_model=Response)
async def get_auto_payment(customer_id: int, service: PaymentService = Depends(get_payment_service)):
    """未配置时 data 为 null"""
    config = await service.get_auto_payment_config(customer_id)
    return success_response(data=AutoPaymentDTO.model_validate(config) if config else None)


@router.put("/customers/{customer_id}/auto-payment", response_model=Response)
async def setup_auto_payment(
    customer_id: int,
    payload: SetupAutoPaymentIn,
    service: PaymentService = Depends(get_payment_service),
):
    config = await service.setup_auto_payment(
        customer_id,
        payload.payment_method_id,
        max_amount=payload.max_amount,
        days_before=payload.days_before,
    )
    return success_response(data=AutoPaymentDTO.model_validate(config))


@router.post("/webhooks/{gateway}", response_model=Response)
async def gateway_webhook(gateway: str, request: Request, service: PaymentService = Depends(get_payment_service)):
    """网关回调：验签通过后记录，返回 200；签名错误返回 401"""
    raw_body = await request.body()
    signature = next((request.headers[h] for h in SIGNATURE_HEADERS if h in request.headers), "")
    log = await service.process_webhook(gateway, raw_body, signature)
    return success_response(data={"received": True, "log_id": log.id})
