"""站内通知与通知偏好"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from domain.common.timeutil import ensure_utc, utc_now


@dataclass
class Notification:
    id: Optional[int]
    customer_id: int
    notification_type: str
    title: str
    message: str
    link: Optional[str] = None
    read: bool = False
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.read_at = ensure_utc(self.read_at)
        self.created_at = ensure_utc(self.created_at)

    def mark_read(self, now: Optional[datetime] = None) -> None:
        if not self.read:
            self.read = True
            self.read_at = now or utc_now()


@dataclass
class NotificationPreference:
    """某类通知的渠道开关；没有记录时仅发送站内通知"""

    id: Optional[int]
    customer_id: int
    notification_type: str
    email: bool = True
    webhook: bool = False
