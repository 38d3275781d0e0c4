"""
订单与服务数据库模型
"""
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text

from .base import Base, Money, utc_now


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(40), unique=True, nullable=False, index=True, comment="订单号")
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True, comment="pending/active/cancelled")
    currency = Column(String(3), nullable=False)
    subtotal = Column(Money(), nullable=False)
    discount = Column(Money(), nullable=False, default=0)
    tax_amount = Column(Money(), nullable=False, default=0)
    total = Column(Money(), nullable=False)
    coupon_id = Column(Integer, ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)
    ip_address = Column(String(45), nullable=True)
    notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)
    activated_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0, comment="条目顺序")
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    product_name = Column(String(200), nullable=False)
    billing_cycle = Column(String(20), nullable=False)
    quantity = Column(Integer, nullable=False)
    setup_fee = Column(Money(), nullable=False)
    recurring_fee = Column(Money(), nullable=False)
    discount = Column(Money(), nullable=False, default=0)
    total = Column(Money(), nullable=False)
    domain = Column(String(255), nullable=True)
    hostname = Column(String(255), nullable=True)
    config_options = Column(JSON, nullable=True)
    service_id = Column(Integer, ForeignKey("services.id", ondelete="SET NULL"), nullable=True, comment="激活后回填")


class ServiceModel(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    product_name = Column(String(200), nullable=False)
    billing_cycle = Column(String(20), nullable=False)
    amount = Column(Money(), nullable=False, comment="周期费用")
    status = Column(String(20), nullable=False, default="pending", index=True)
    domain = Column(String(255), nullable=True)
    hostname = Column(String(255), nullable=True)
    config_options = Column(JSON, nullable=True)
    registration_date = Column(DateTime(timezone=True), nullable=True)
    next_due_date = Column(DateTime(timezone=True), nullable=True, index=True)
    suspension_reason = Column(String(255), nullable=True)
    termination_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)
