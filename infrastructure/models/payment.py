"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Text, JSON,
    Index, text
)

from .base import Base, TimestampMixin


ACTIVE_PAYMENT_CONDITION = text("status IN ('pending', 'processing', 'completed')")


class PaymentModel(TimestampMixin, Base):
    """
    支付数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.payment.entity.Payment 中
    """
    __tablename__ = "payments"

    id = Column(String(40), primary_key=True, comment="PAY_<base36>_<rand>")

    booking_id = Column(String(64), nullable=False, index=True, comment="服务预约ID")
    client_id = Column(String(64), nullable=False, index=True)
    professional_id = Column(String(64), nullable=False, index=True)

    # 金额（最小货币单位整数）
    service_amount = Column(BigInteger, nullable=False)
    platform_fee = Column(BigInteger, nullable=False)
    tax_amount = Column(BigInteger, nullable=False)
    total_amount = Column(BigInteger, nullable=False)
    processing_fee = Column(BigInteger, nullable=False, default=0, comment="渠道手续费估算")
    currency = Column(String(3), nullable=False, default="COP", comment="货币代码 ISO-4217")

    method = Column(String(30), nullable=False, comment="credit_card/pse/nequi/...")
    provider = Column(String(30), nullable=False, index=True, comment="wompi/mercadopago/stripe/paypal")
    provider_transaction_id = Column(String(200), nullable=True)
    provider_response = Column(JSON, nullable=True)

    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="pending/processing/completed/failed"
    )
    failure_reason = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    invoice_id = Column(String(40), nullable=True)

    # 退款子记录
    refund_status = Column(String(20), nullable=False, default="none")
    refund_amount = Column(BigInteger, nullable=False, default=0)
    refunded_amount = Column(BigInteger, nullable=False, default=0, comment="累计已退款金额")
    refund_reason = Column(Text, nullable=True)
    provider_refund_id = Column(String(200), nullable=True)
    refund_failure_reason = Column(Text, nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    # 乐观锁版本号
    version = Column(Integer, nullable=False, default=0)

    processed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)

    # 元数据（使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    __table_args__ = (
        # 每个预约至多一笔进行中或已完成的支付
        Index(
            "uq_payments_booking_active",
            "booking_id",
            unique=True,
            postgresql_where=ACTIVE_PAYMENT_CONDITION,
            sqlite_where=ACTIVE_PAYMENT_CONDITION,
        ),
        Index("ix_payments_provider_txn", "provider", "provider_transaction_id"),
        Index("ix_payments_status_updated", "status", "updated_at"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id='{self.id}', booking_id='{self.booking_id}', "
            f"provider='{self.provider}', total={self.total_amount}, status='{self.status}')>"
        )
