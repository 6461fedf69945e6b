"""
服务预约数据库模型（支付模块只关心价格与支付状态）
"""
from sqlalchemy import Column, BigInteger, String, Text

from .base import Base, TimestampMixin


class BookingModel(TimestampMixin, Base):
    __tablename__ = "service_requests"

    id = Column(String(64), primary_key=True)
    client_id = Column(String(64), nullable=False, index=True)
    professional_id = Column(String(64), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    payment_status = Column(String(20), nullable=False, default="unpaid")
    final_price = Column(BigInteger, nullable=False, default=0, comment="最终价格（最小货币单位）")
