"""
发票数据库模型
"""
from sqlalchemy import Column, Integer, BigInteger, String, DateTime, Text, JSON, Numeric

from .base import Base, TimestampMixin


class InvoiceModel(TimestampMixin, Base):
    __tablename__ = "invoices"

    id = Column(String(40), primary_key=True)
    invoice_number = Column(String(20), unique=True, nullable=False, comment="YYYYMM + 4 位序号")
    payment_id = Column(String(40), unique=True, nullable=False, comment="一笔支付对应一张发票")
    booking_id = Column(String(64), nullable=False, index=True)
    client_id = Column(String(64), nullable=False, index=True)
    professional_id = Column(String(64), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="draft", index=True)

    # 服务明细
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(BigInteger, nullable=False)

    # 税率
    iva_rate = Column(Numeric(6, 4), nullable=False)
    retention_rate = Column(Numeric(6, 4), nullable=False)
    platform_fee_rate = Column(Numeric(6, 4), nullable=False)

    # 金额（最小货币单位）
    subtotal = Column(BigInteger, nullable=False)
    discount = Column(BigInteger, nullable=False, default=0)
    taxable_amount = Column(BigInteger, nullable=False)
    iva_amount = Column(BigInteger, nullable=False)
    retention_amount = Column(BigInteger, nullable=False)
    platform_fee_amount = Column(BigInteger, nullable=False)
    total = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False, default="COP")

    issue_date = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    paid_date = Column(DateTime(timezone=True), nullable=True)
    payment_method = Column(String(30), nullable=True)
    payment_reference = Column(String(200), nullable=True)

    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    refund_amount = Column(BigInteger, nullable=False, default=0)
    refund_reason = Column(Text, nullable=True)
    refund_reference = Column(String(200), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    notes = Column(Text, nullable=True)
    extra_metadata = Column("metadata", JSON, nullable=True)

    def __repr__(self):
        return f"<InvoiceModel(id='{self.id}', number='{self.invoice_number}', status='{self.status}')>"


class InvoiceSequenceModel(Base):
    """按月前缀的发票号计数器"""
    __tablename__ = "invoice_sequences"

    prefix = Column(String(6), primary_key=True, comment="YYYYMM")
    last_value = Column(Integer, nullable=False, default=0)
