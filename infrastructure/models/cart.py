"""
购物车与优惠券数据库模型
"""
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String

from .base import Base, Money, utc_now


class CartModel(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=True, index=True)
    session_id = Column(String(100), nullable=True, index=True, comment="匿名会话ID")
    currency = Column(String(3), nullable=False, default="USD")
    coupon_id = Column(Integer, ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True, comment="过期时间")
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    product_name = Column(String(200), nullable=False)
    billing_cycle = Column(String(20), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    setup_fee = Column(Money(), nullable=False, default=0)
    recurring_fee = Column(Money(), nullable=False, default=0)
    discount = Column(Money(), nullable=False, default=0)
    total = Column(Money(), nullable=False, default=0)
    domain = Column(String(255), nullable=True)
    hostname = Column(String(255), nullable=True)
    config_options = Column(JSON, nullable=True, comment="选项ID → 子选项ID")
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)


class CouponModel(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True, comment="优惠码")
    coupon_type = Column(String(20), nullable=False, comment="percentage/fixed/free_setup/override")
    amount = Column(Money(), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    max_uses = Column(Integer, nullable=True, comment="最大使用次数，空为不限")
    current_uses = Column(Integer, nullable=False, default=0)
    product_ids = Column(JSON, nullable=True, comment="限定产品，空为全部")
    starts_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
