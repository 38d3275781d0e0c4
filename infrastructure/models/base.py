"""
数据库模型基类（SQLAlchemy 2.0 风格）
"""
from datetime import datetime, timezone

from sqlalchemy import Numeric
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def Money():  # noqa: N802 - 作为列类型工厂使用
    """金额列统一精度"""
    return Numeric(precision=20, scale=8)


# 元数据对象用于建表
metadata = Base.metadata
