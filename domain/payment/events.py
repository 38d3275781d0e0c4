"""
Payment domain events.

Dataclass events record ledger facts for downstream handling (outbound
webhooks). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from domain.common.events import DomainEvent


@dataclass
class PaymentCompleted(DomainEvent):
    event_type = "payment.completed"

    transaction_id: int
    customer_id: int
    amount: Decimal
    currency: str
    gateway: str
    invoice_id: Optional[int] = None


@dataclass
class PaymentFailed(DomainEvent):
    event_type = "payment.failed"

    request_id: int
    customer_id: int
    gateway: str
    reason: Optional[str] = None


@dataclass
class PaymentRefunded(DomainEvent):
    event_type = "payment.refunded"

    transaction_id: int
    refund_transaction_id: int
    customer_id: int
    amount: Decimal
    currency: str


@dataclass
class CreditAdjusted(DomainEvent):
    event_type = "credit.adjusted"

    customer_id: int
    adjustment_type: str
    amount: Decimal
    balance_after: Decimal


@dataclass
class InvoicePaid(DomainEvent):
    event_type = "invoice.paid"

    invoice_id: int
    customer_id: int
    total: Decimal
    currency: str
