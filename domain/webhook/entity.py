"""
出站 Webhook 实体 - 订阅配置与投递记录
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from domain.common.exceptions import DomainValidationException
from domain.common.timeutil import ensure_utc, utc_now

WILDCARD_EVENT = "*"
MAX_RESPONSE_BODY = 2000


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class WebhookConfig:
    """客户或系统级的事件订阅；customer_id 为空表示系统级"""

    id: Optional[int]
    name: str
    url: str
    secret: Optional[str] = None
    customer_id: Optional[int] = None
    events: List[str] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)
    active: bool = True
    verify_ssl: bool = True
    timeout: int = 30
    retry_attempts: int = 3
    last_triggered: Optional[datetime] = None
    failure_count: int = 0
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.url.startswith(("http://", "https://")):
            raise DomainValidationException("Webhook URL must be http(s)", field="url")
        if self.timeout <= 0:
            raise DomainValidationException("Webhook timeout must be positive", field="timeout")
        if self.retry_attempts < 1:
            raise DomainValidationException("Webhook retry_attempts must be at least 1", field="retry_attempts")
        self.last_triggered = ensure_utc(self.last_triggered)
        self.created_at = ensure_utc(self.created_at)

    def is_subscribed(self, event_type: str) -> bool:
        return self.active and (event_type in self.events or WILDCARD_EVENT in self.events)


@dataclass
class WebhookDelivery:
    """单个 (webhook, event) 的投递记录，多次尝试累计 attempts"""

    id: Optional[int]
    webhook_id: int
    event_type: str
    payload: str
    status: DeliveryStatus = DeliveryStatus.PENDING
    attempts: int = 0
    request_headers: Dict[str, str] = field(default_factory=dict)
    response_code: Optional[int] = None
    response_body: Optional[str] = None
    response_time_ms: Optional[int] = None
    error_message: Optional[str] = None
    delivered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.status = DeliveryStatus(self.status)
        self.delivered_at = ensure_utc(self.delivered_at)
        self.created_at = ensure_utc(self.created_at)

    def record_attempt(
        self,
        *,
        response_code: Optional[int],
        response_body: Optional[str],
        response_time_ms: int,
        error_message: Optional[str] = None,
    ) -> bool:
        """记录一次尝试，返回是否成功（仅 2xx 视为成功）"""
        self.attempts += 1
        self.response_code = response_code
        self.response_body = response_body[:MAX_RESPONSE_BODY] if response_body else response_body
        self.response_time_ms = response_time_ms
        succeeded = response_code is not None and 200 <= response_code < 300
        if succeeded:
            self.status = DeliveryStatus.SUCCESS
            self.error_message = None
            self.delivered_at = utc_now()
        else:
            self.error_message = error_message or f"HTTP {response_code}"
        return succeeded

    def mark_failed(self) -> None:
        self.status = DeliveryStatus.FAILED
