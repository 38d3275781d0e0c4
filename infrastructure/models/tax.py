"""
税率规则数据库模型
"""
from sqlalchemy import Boolean, Column, Index, Integer, Numeric, String

from .base import Base


class TaxRuleModel(Base):
    __tablename__ = "tax_rules"
    __table_args__ = (Index("ix_tax_rules_region", "country", "state"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, comment="规则名称")
    country = Column(String(2), nullable=False, comment="国家代码（大写）")
    state = Column(String(100), nullable=False, default="", comment="州/省，空表示全国")
    rate = Column(Numeric(precision=8, scale=4), nullable=False, comment="税率（百分比）")
    tax_type = Column(String(20), nullable=False, default="vat", comment="税种")
    is_inclusive = Column(Boolean, nullable=False, default=False, comment="是否含税价")
    priority = Column(Integer, nullable=False, default=0, comment="优先级，越大越先")
    active = Column(Boolean, nullable=False, default=True)
