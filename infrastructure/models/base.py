"""
数据库模型基类（SQLAlchemy 2.0 风格）
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import DeclarativeBase


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    """创建/更新时间（UTC）；仓储显式写入 updated_at 时以其为准"""

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


# 元数据对象用于建表
metadata = Base.metadata
