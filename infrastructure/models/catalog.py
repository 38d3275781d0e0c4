"""
产品目录数据库模型
"""
from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Text, UniqueConstraint

from .base import Base, Money


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, comment="产品名称")
    product_type = Column(String(50), nullable=False, default="hosting", comment="产品类型")
    description = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True, comment="是否上架")


class ProductPricingModel(Base):
    """产品定价：每个产品每个币种一行，-1 表示该周期未开放"""

    __tablename__ = "product_pricing"
    __table_args__ = (UniqueConstraint("product_id", "currency", name="uq_product_pricing_currency"),)

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    currency = Column(String(3), nullable=False, comment="币种")
    setup_fee = Column(Money(), nullable=False, default=0, comment="安装费")
    monthly = Column(Money(), nullable=False, default=-1)
    quarterly = Column(Money(), nullable=False, default=-1)
    semi_annually = Column(Money(), nullable=False, default=-1)
    annually = Column(Money(), nullable=False, default=-1)
    biennially = Column(Money(), nullable=False, default=-1)
    triennially = Column(Money(), nullable=False, default=-1)


class ConfigOptionModel(Base):
    __tablename__ = "config_options"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False, comment="选项名称")
    sort_order = Column(Integer, nullable=False, default=0)


class ConfigSubOptionModel(Base):
    __tablename__ = "config_sub_options"

    id = Column(Integer, primary_key=True, index=True)
    option_id = Column(Integer, ForeignKey("config_options.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False, comment="子选项名称")
    setup_fee = Column(Money(), nullable=False, default=0)
    monthly = Column(Money(), nullable=False, default=0)
    quarterly = Column(Money(), nullable=False, default=0)
    semi_annually = Column(Money(), nullable=False, default=0)
    annually = Column(Money(), nullable=False, default=0)
    biennially = Column(Money(), nullable=False, default=0)
    triennially = Column(Money(), nullable=False, default=0)
    sort_order = Column(Integer, nullable=False, default=0)
