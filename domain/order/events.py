"""Order lifecycle events."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from domain.common.events import DomainEvent


@dataclass
class OrderCreated(DomainEvent):
    event_type = "order.created"

    order_id: int
    order_number: str
    customer_id: int
    total: Decimal
    currency: str


@dataclass
class OrderActivated(DomainEvent):
    event_type = "order.activated"

    order_id: int
    customer_id: int
    service_ids: List[int] = field(default_factory=list)


@dataclass
class OrderCancelled(DomainEvent):
    event_type = "order.cancelled"

    order_id: int
    customer_id: int
    reason: Optional[str] = None


@dataclass
class ServiceStatusChanged(DomainEvent):
    event_type = "service.status_changed"

    service_id: int
    customer_id: int
    status: str
