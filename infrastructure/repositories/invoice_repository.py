"""
发票仓储实现
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import ConflictException, NotFoundException
from domain.invoice.entity import (
    Invoice,
    InvoiceAmounts,
    InvoiceRates,
    InvoiceStatus,
    ServiceDetails,
    format_invoice_number,
    invoice_prefix,
    parse_invoice_sequence,
)
from domain.invoice.repository import InvoiceRepository
from infrastructure.models.invoice import InvoiceModel, InvoiceSequenceModel
from core.logging_config import get_logger


logger = get_logger(__name__)

_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}


def _utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)


class SQLAlchemyInvoiceRepository(InvoiceRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: InvoiceModel) -> Invoice:
        return Invoice(
            id=model.id,
            invoice_number=model.invoice_number,
            payment_id=model.payment_id,
            booking_id=model.booking_id,
            client_id=model.client_id,
            professional_id=model.professional_id,
            status=InvoiceStatus(model.status),
            service=ServiceDetails(
                title=model.title,
                description=model.description,
                category=model.category,
                quantity=model.quantity,
                unit_price=model.unit_price,
                discount=model.discount,
            ),
            rates=InvoiceRates(
                iva_rate=Decimal(str(model.iva_rate)),
                retention_rate=Decimal(str(model.retention_rate)),
                platform_fee_rate=Decimal(str(model.platform_fee_rate)),
            ),
            amounts=InvoiceAmounts(
                subtotal=model.subtotal,
                discount=model.discount,
                taxable_amount=model.taxable_amount,
                iva_amount=model.iva_amount,
                retention_amount=model.retention_amount,
                platform_fee_amount=model.platform_fee_amount,
                total=model.total,
            ),
            currency=model.currency,
            issue_date=_utc(model.issue_date),
            due_date=_utc(model.due_date),
            paid_date=_utc(model.paid_date),
            payment_method=model.payment_method,
            payment_reference=model.payment_reference,
            cancellation_reason=model.cancellation_reason,
            cancelled_at=_utc(model.cancelled_at),
            refund_amount=model.refund_amount,
            refund_reason=model.refund_reason,
            refund_reference=model.refund_reference,
            refunded_at=_utc(model.refunded_at),
            notes=model.notes,
            metadata=model.extra_metadata or {},
            created_at=_utc(model.created_at),
            updated_at=_utc(model.updated_at),
        )

    @staticmethod
    def _mutable_values(entity: Invoice) -> dict:
        return {
            "status": entity.status.value,
            "issue_date": entity.issue_date,
            "paid_date": entity.paid_date,
            "payment_reference": entity.payment_reference,
            "cancellation_reason": entity.cancellation_reason,
            "cancelled_at": entity.cancelled_at,
            "refund_amount": entity.refund_amount,
            "refund_reason": entity.refund_reason,
            "refund_reference": entity.refund_reference,
            "refunded_at": entity.refunded_at,
            "notes": entity.notes,
            "extra_metadata": entity.metadata,
            "updated_at": entity.updated_at,
        }

    def _to_model(self, entity: Invoice) -> InvoiceModel:
        s, r, a = entity.service, entity.rates, entity.amounts
        return InvoiceModel(
            id=entity.id,
            invoice_number=entity.invoice_number,
            payment_id=entity.payment_id,
            booking_id=entity.booking_id,
            client_id=entity.client_id,
            professional_id=entity.professional_id,
            title=s.title,
            description=s.description,
            category=s.category,
            quantity=s.quantity,
            unit_price=s.unit_price,
            iva_rate=r.iva_rate,
            retention_rate=r.retention_rate,
            platform_fee_rate=r.platform_fee_rate,
            subtotal=a.subtotal,
            discount=a.discount,
            taxable_amount=a.taxable_amount,
            iva_amount=a.iva_amount,
            retention_amount=a.retention_amount,
            platform_fee_amount=a.platform_fee_amount,
            total=a.total,
            currency=entity.currency,
            due_date=entity.due_date,
            payment_method=entity.payment_method,
            created_at=entity.created_at,
            **self._mutable_values(entity),
        )

    async def create(self, invoice: Invoice) -> Invoice:
        db_invoice = self._to_model(invoice)
        self.session.add(db_invoice)
        try:
            await self.session.flush()
        except IntegrityError as e:
            logger.warning("invoice_create_conflict", payment_id=invoice.payment_id, error=str(e.orig))
            raise ConflictException(
                "Invoice already exists for payment",
                details={"payment_id": invoice.payment_id},
            ) from e
        logger.info("invoice_created", invoice_id=invoice.id, invoice_number=invoice.invoice_number)
        return invoice

    async def _fetch_one(self, *criteria) -> Optional[Invoice]:
        result = await self.session.execute(
            select(InvoiceModel).where(*criteria).execution_options(populate_existing=True)
        )
        model = result.scalars().first()
        return self._to_entity(model) if model else None

    async def get_by_id(self, invoice_id: str) -> Optional[Invoice]:
        return await self._fetch_one(InvoiceModel.id == invoice_id)

    async def get_by_payment_id(self, payment_id: str) -> Optional[Invoice]:
        return await self._fetch_one(InvoiceModel.payment_id == payment_id)

    async def update(self, invoice: Invoice) -> Invoice:
        result = await self.session.execute(
            update(InvoiceModel)
            .where(InvoiceModel.id == invoice.id)
            .values(**self._mutable_values(invoice))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFoundException("Invoice", invoice.id)
        return invoice

    async def _highest_issued_sequence(self, prefix: str) -> int:
        result = await self.session.execute(
            select(func.max(InvoiceModel.invoice_number)).where(InvoiceModel.invoice_number.like(f"{prefix}%"))
        )
        highest = result.scalar_one_or_none()
        return parse_invoice_sequence(prefix, highest) if highest else 0

    async def next_invoice_number(self, now: datetime) -> str:
        """
        写优先：先确保计数行存在，再原子自增，最后读回。
        自增语句持有行锁（SQLite 为库级写锁），直到调用方事务结束。
        """
        prefix = invoice_prefix(now)
        dialect = self.session.bind.dialect.name
        insert = _INSERTS.get(dialect)
        if insert is None:
            raise RuntimeError(f"Invoice numbering not supported on dialect {dialect}")

        seed = await self._highest_issued_sequence(prefix)
        await self.session.execute(
            insert(InvoiceSequenceModel)
            .values(prefix=prefix, last_value=seed)
            .on_conflict_do_nothing(index_elements=["prefix"])
        )
        await self.session.execute(
            update(InvoiceSequenceModel)
            .where(InvoiceSequenceModel.prefix == prefix)
            .values(last_value=InvoiceSequenceModel.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(
            select(InvoiceSequenceModel.last_value).where(InvoiceSequenceModel.prefix == prefix)
        )
        return format_invoice_number(prefix, result.scalar_one())
