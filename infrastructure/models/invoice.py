"""
账单数据库模型
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from .base import Base, Money, utc_now


class InvoiceModel(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(40), unique=True, nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="unpaid", index=True)
    currency = Column(String(3), nullable=False)
    subtotal = Column(Money(), nullable=False)
    discount = Column(Money(), nullable=False, default=0)
    tax_amount = Column(Money(), nullable=False, default=0)
    total = Column(Money(), nullable=False)
    amount_paid = Column(Money(), nullable=False, default=0)
    balance = Column(Money(), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=True, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)


class InvoiceItemModel(Base):
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    description = Column(String(500), nullable=False)
    amount = Column(Money(), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    service_id = Column(Integer, ForeignKey("services.id", ondelete="SET NULL"), nullable=True)
    item_type = Column(String(30), nullable=False, default="service", comment="service/renewal/setup/custom")
    period_start = Column(DateTime(timezone=True), nullable=True, comment="计费周期起")
    period_end = Column(DateTime(timezone=True), nullable=True, comment="计费周期止")
