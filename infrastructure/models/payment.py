"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text,
)

from .base import Base, Money, utc_now


class PaymentGatewayModel(Base):
    """支付网关配置"""

    __tablename__ = "payment_gateways"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(50), unique=True, nullable=False, index=True, comment="处理器注册键")
    display_name = Column(String(100), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    visible = Column(Boolean, nullable=False, default=True)
    supports_refund = Column(Boolean, nullable=False, default=False)
    supports_recurring = Column(Boolean, nullable=False, default=False)
    supports_tokenize = Column(Boolean, nullable=False, default=False)
    fee_percent = Column(Numeric(precision=8, scale=4), nullable=False, default=0, comment="手续费百分比")
    fee_fixed = Column(Money(), nullable=False, default=0, comment="固定手续费")
    min_amount = Column(Money(), nullable=True)
    max_amount = Column(Money(), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)


class PaymentRequestModel(Base):
    """网关扣款请求"""

    __tablename__ = "payment_requests"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True, index=True)
    gateway_id = Column(Integer, ForeignKey("payment_gateways.id"), nullable=False)
    amount = Column(Money(), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    gateway_ref = Column(String(200), nullable=True, index=True, comment="网关侧引用")
    payment_url = Column(String(1000), nullable=True)
    error_message = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)


class TransactionModel(Base):
    """交易流水（只追加），退款金额为负并指向原交易"""

    __tablename__ = "transactions"
    __table_args__ = (Index("ix_transactions_gateway_ref", "gateway", "gateway_trans_id"),)

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True, index=True)
    transaction_type = Column(String(20), nullable=False, comment="payment/refund/credit/debit/chargeback")
    status = Column(String(20), nullable=False, default="completed")
    currency = Column(String(3), nullable=False)
    amount = Column(Money(), nullable=False)
    fee = Column(Money(), nullable=False, default=0)
    gateway = Column(String(50), nullable=True)
    gateway_trans_id = Column(String(200), nullable=True)
    description = Column(String(500), nullable=True)
    refunded_amount = Column(Money(), nullable=False, default=0, comment="累计已退款")
    refund_of_id = Column(Integer, ForeignKey("transactions.id"), nullable=True, index=True, comment="退款对应原交易")
    ip_address = Column(String(45), nullable=True)
    # 注意：metadata 是 SQLAlchemy Declarative 保留属性名，这里使用 extra_metadata 映射到列名 metadata
    extra_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)


class CreditAdjustmentModel(Base):
    """余额调整审计"""

    __tablename__ = "credit_adjustments"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    adjustment_type = Column(String(20), nullable=False, comment="add/subtract")
    amount = Column(Money(), nullable=False)
    currency = Column(String(3), nullable=False)
    balance_before = Column(Money(), nullable=False)
    balance_after = Column(Money(), nullable=False)
    reason = Column(String(500), nullable=True)
    related_type = Column(String(50), nullable=True)
    related_id = Column(Integer, nullable=True)
    staff_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class PaymentSubscriptionModel(Base):
    """网关周期扣款订阅"""

    __tablename__ = "payment_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    gateway_id = Column(Integer, ForeignKey("payment_gateways.id"), nullable=False)
    gateway_sub_id = Column(String(200), nullable=True, index=True)
    payment_method = Column(String(200), nullable=True)
    amount = Column(Money(), nullable=False)
    currency = Column(String(3), nullable=False)
    interval = Column(String(20), nullable=False, default="month")
    interval_count = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default="active", index=True)
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)


class GatewayWebhookLogModel(Base):
    """网关回调接收日志"""

    __tablename__ = "gateway_webhook_logs"

    id = Column(Integer, primary_key=True, index=True)
    gateway_id = Column(Integer, ForeignKey("payment_gateways.id"), nullable=False, index=True)
    event_type = Column(String(100), nullable=True)
    payload = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="received")
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class PaymentMethodModel(Base):
    """客户保存的支付方式"""

    __tablename__ = "payment_methods"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    method_type = Column(String(32), nullable=False, comment="card/paypal/bank_wire/crypto/alipay/wechat_pay")
    gateway = Column(String(50), nullable=False)
    gateway_method_id = Column(String(255), nullable=True, comment="网关侧令牌")
    label = Column(String(100), nullable=True)
    last4 = Column(String(4), nullable=True)
    brand = Column(String(32), nullable=True)
    expiry_month = Column(Integer, nullable=True)
    expiry_year = Column(Integer, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)


class AutoPaymentModel(Base):
    """客户自动扣款设置，每个客户一条"""

    __tablename__ = "auto_payments"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, unique=True)
    payment_method_id = Column(Integer, ForeignKey("payment_methods.id"), nullable=False, index=True)
    active = Column(Boolean, nullable=False, default=True)
    max_amount = Column(Money(), nullable=False, default=0, comment="0 表示不限额")
    days_before = Column(Integer, nullable=False, default=3, comment="到期前几天扣款")
    last_attempt = Column(DateTime(timezone=True), nullable=True)
    last_success = Column(DateTime(timezone=True), nullable=True)
    consecutive_fails = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)
