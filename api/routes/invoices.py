"""
账单与税费预览 API 路由
"""
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from api.dependencies import get_invoice_service, get_tax_service
from application.dto import (
    AdHocInvoiceCreateDTO,
    InvoiceCreateDTO,
    InvoiceDTO,
    InvoicePaymentDTO,
    InvoiceRefundDTO,
    PaginationParams,
    TaxPreviewDTO,
    TransactionDTO,
)
from application.services.invoice_service import InvoiceService
from application.services.tax_service import TaxService
from core.response import Response, success_response
from domain.invoice.entity import InvoiceLine, InvoiceStatus

router = APIRouter(tags=["Invoices"])


@router.post("/invoices", response_model=Response, status_code=status.HTTP_201_CREATED)
async def create_invoice(payload: InvoiceCreateDTO, service: InvoiceService = Depends(get_invoice_service)):
    invoice = await service.create_from_order(payload.order_id, payload.due_days)
    return success_response(data=InvoiceDTO.model_validate(invoice), message="Invoice created")


@router.post("/customers/{customer_id}/invoices", response_model=Response, status_code=status.HTTP_201_CREATED)
async def create_adhoc_invoice(
    customer_id: int,
    payload: AdHocInvoiceCreateDTO,
    service: InvoiceService = Depends(get_invoice_service),
):
    """手工开票"""
    lines = [InvoiceLine(**item.model_dump()) for item in payload.items]
    invoice = await service.create_invoice(
        customer_id, lines, currency=payload.currency, due_days=payload.due_days
    )
    return success_response(data=InvoiceDTO.model_validate(invoice), message="Invoice created")


@router.post("/services/{service_id}/renewal-invoice", response_model=Response, status_code=status.HTTP_201_CREATED)
async def create_renewal_invoice(service_id: int, service: InvoiceService = Depends(get_invoice_service)):
    invoice = await service.create_service_renewal_invoice(service_id)
    return success_response(data=InvoiceDTO.model_validate(invoice), message="Invoice created")


@router.get("/customers/{customer_id}/invoices", response_model=Response)
async def list_invoices(
    customer_id: int,
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status"),
    pagination: PaginationParams = Depends(),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoices = await service.list_invoices(customer_id, status_filter, skip=pagination.skip, limit=pagination.limit)
    return success_response(data=[InvoiceDTO.model_validate(i) for i in invoices])


@router.get("/customers/{customer_id}/invoices/unpaid", response_model=Response)
async def list_unpaid_invoices(customer_id: int, service: InvoiceService = Depends(get_invoice_service)):
    invoices = await service.get_unpaid_invoices(customer_id)
    return success_response(data=[InvoiceDTO.model_validate(i) for i in invoices])


@router.get("/invoices/number/{invoice_number}", response_model=Response)
async def get_invoice_by_number(invoice_number: str, service: InvoiceService = Depends(get_invoice_service)):
    return success_response(data=InvoiceDTO.model_validate(await service.get_invoice_by_number(invoice_number)))


@router.get("/invoices/{invoice_id}", response_model=Response)
async def get_invoice(invoice_id: int, service: InvoiceService = Depends(get_invoice_service)):
    return success_response(data=InvoiceDTO.model_validate(await service.get_invoice(invoice_id)))


@router.post("/invoices/{invoice_id}/payments", response_model=Response, status_code=status.HTTP_201_CREATED)
async def record_invoice_payment(
    invoice_id: int,
    payload: InvoicePaymentDTO,
    service: InvoiceService = Depends(get_invoice_service),
):
    """线下入账（银行转账等）"""
    transaction = await service.record_payment(
        invoice_id,
        payload.amount,
        gateway=payload.gateway,
        gateway_ref=payload.gateway_ref,
    )
    return success_response(data=TransactionDTO.model_validate(transaction))


@router.post("/invoices/{invoice_id}/refund", response_model=Response)
async def refund_invoice(
    invoice_id: int,
    payload: InvoiceRefundDTO,
    service: InvoiceService = Depends(get_invoice_service),
):
    refunds = await service.refund_invoice(
        invoice_id, payload.amount, reason=payload.reason, staff_id=payload.staff_id
    )
    return success_response(data=[TransactionDTO.model_validate(r) for r in refunds], message="Invoice refunded")


@router.post("/invoices/{invoice_id}/cancel", response_model=Response)
async def cancel_invoice(invoice_id: int, service: InvoiceService = Depends(get_invoice_service)):
    return success_response(data=InvoiceDTO.model_validate(await service.cancel_invoice(invoice_id)))


@router.get("/tax/preview", response_model=Response, tags=["Tax"])
async def preview_tax(
    country: str = Query(..., min_length=2, max_length=2),
    amount: Decimal = Query(..., ge=0),
    state: Optional[str] = Query(None),
    service: TaxService = Depends(get_tax_service),
):
    breakdown = await service.calculate_for_region(country, state, amount)
    return success_response(data=TaxPreviewDTO.model_validate(breakdown))
