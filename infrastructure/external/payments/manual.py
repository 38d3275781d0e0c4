"""
Manual / bank-transfer processor.

Charges never settle synchronously: the request stays pending until staff
records the transfer (or the bank posts a signed notification).
"""
from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Optional
from urllib.parse import urlencode

from application.dtos.payments import ChargeRequest, PaymentResult, RefundResult
from domain.webhook.signing import verify_signature
from infrastructure.external.payments.base import BasePaymentProcessor


class ManualProcessor(BasePaymentProcessor):
    slug = "manual"

    def __init__(
        self,
        *,
        instructions_url: str,
        webhook_secret: Optional[str] = None,
        timeouts: Optional[dict[str, float]] = None,
    ) -> None:
        super().__init__(timeouts=timeouts)
        self._instructions_url = instructions_url
        self._webhook_secret = webhook_secret

    async def get_payment_url(self, req: ChargeRequest) -> str:
        query = urlencode({"request": req.request_id, "amount": str(req.amount), "currency": req.currency})
        return f"{self._instructions_url}?{query}"

    async def process_payment(self, req: ChargeRequest) -> PaymentResult:
        url = await self.get_payment_url(req)
        self._log("manual_payment_awaiting_transfer", request_id=req.request_id, amount=str(req.amount))
        return PaymentResult(
            success=False,
            status=self._map_status("awaiting_transfer"),
            redirect_url=url,
            message="Awaiting bank transfer",
        )

    async def process_refund(self, gateway_trans_id: str, amount: Decimal, currency: str) -> RefundResult:
        refund_id = f"manual-{uuid.uuid4().hex[:16]}"
        self._log("manual_refund_recorded", gateway_trans_id=gateway_trans_id, refund_id=refund_id, amount=str(amount))
        return RefundResult(success=True, refund_id=refund_id)

    def validate_webhook(self, payload: bytes, signature: str) -> bool:
        if not self._webhook_secret:
            return False
        return verify_signature(payload, signature, self._webhook_secret)
