"""
出站 Webhook 数据库模型
"""
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from .base import Base, utc_now


class WebhookConfigModel(Base):
    __tablename__ = "webhooks"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=True, index=True, comment="空为系统级")
    name = Column(String(100), nullable=False)
    url = Column(String(1000), nullable=False)
    secret = Column(String(255), nullable=True, comment="HMAC 签名密钥")
    events = Column(JSON, nullable=False, default=list, comment="订阅事件，* 为全部")
    headers = Column(JSON, nullable=True, comment="自定义请求头")
    active = Column(Boolean, nullable=False, default=True, index=True)
    verify_ssl = Column(Boolean, nullable=False, default=True)
    timeout = Column(Integer, nullable=False, default=30, comment="秒")
    retry_attempts = Column(Integer, nullable=False, default=3)
    last_triggered = Column(DateTime(timezone=True), nullable=True)
    failure_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class WebhookDeliveryModel(Base):
    __tablename__ = "webhook_deliveries"

    id = Column(Integer, primary_key=True, index=True)
    webhook_id = Column(Integer, ForeignKey("webhooks.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String(100), nullable=False, index=True)
    payload = Column(Text, nullable=False)
    request_headers = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    attempts = Column(Integer, nullable=False, default=0)
    response_code = Column(Integer, nullable=True)
    response_body = Column(Text, nullable=True)
    response_time_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
