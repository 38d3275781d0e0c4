"""
客户数据库模型
"""
from sqlalchemy import Column, DateTime, Integer, String

from .base import Base, Money, utc_now


class CustomerModel(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True, comment="邮箱")
    first_name = Column(String(100), nullable=True, comment="名")
    last_name = Column(String(100), nullable=True, comment="姓")
    country = Column(String(2), nullable=True, comment="国家代码 ISO-3166")
    state = Column(String(100), nullable=True, comment="州/省")
    currency = Column(String(3), nullable=False, default="USD", comment="结算币种")
    credit = Column(Money(), nullable=False, default=0, comment="预付余额")
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False, comment="创建时间")
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False, comment="更新时间")
