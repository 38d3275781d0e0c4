"""
Domain events base.

Events are plain dataclasses collected by services during a unit of work and
published (as outbound webhooks) only after the unit commits.
"""
from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Dict

from domain.common.timeutil import utc_now


@dataclass
class DomainEvent:
    event_type: ClassVar[str] = "event"

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()), init=False)
    occurred_at: datetime = field(default_factory=utc_now, init=False)

    def to_payload(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("event_id", None)
        data.pop("occurred_at", None)
        return {key: _plain(value) for key, value in data.items()}


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value
