"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import ConflictException, StalePaymentError
from domain.payment.entity import ACTIVE_STATUSES, Payment, PaymentStatus, RefundStatus
from domain.payment.repository import PaymentRepository
from infrastructure.models.payment import PaymentModel
from core.logging_config import get_logger


logger = get_logger(__name__)

# 可变列：create 之后允许被 update 修改的字段
_MUTABLE_COLUMNS = (
    "status",
    "provider_transaction_id",
    "provider_response",
    "failure_reason",
    "invoice_id",
    "refund_status",
    "refund_amount",
    "refunded_amount",
    "refund_reason",
    "provider_refund_id",
    "refund_failure_reason",
    "refunded_at",
    "updated_at",
    "processed_at",
    "completed_at",
    "failed_at",
)


class SQLAlchemyPaymentRepository(PaymentRepository):
    """支付仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            booking_id=model.booking_id,
            client_id=model.client_id,
            professional_id=model.professional_id,
            service_amount=model.service_amount,
            platform_fee=model.platform_fee,
            tax_amount=model.tax_amount,
            total_amount=model.total_amount,
            processing_fee=model.processing_fee or 0,
            currency=model.currency,
            method=model.method,
            provider=model.provider,
            status=PaymentStatus(model.status),
            provider_transaction_id=model.provider_transaction_id,
            provider_response=model.provider_response,
            failure_reason=model.failure_reason,
            description=model.description,
            metadata=model.extra_metadata or {},
            invoice_id=model.invoice_id,
            refund_status=RefundStatus(model.refund_status),
            refund_amount=model.refund_amount,
            refunded_amount=model.refunded_amount,
            refund_reason=model.refund_reason,
            provider_refund_id=model.provider_refund_id,
            refund_failure_reason=model.refund_failure_reason,
            refunded_at=model.refunded_at,
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
            processed_at=model.processed_at,
            completed_at=model.completed_at,
            failed_at=model.failed_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        return PaymentModel(
            id=entity.id,
            booking_id=entity.booking_id,
            client_id=entity.client_id,
            professional_id=entity.professional_id,
            service_amount=entity.service_amount,
            platform_fee=entity.platform_fee,
            tax_amount=entity.tax_amount,
            total_amount=entity.total_amount,
            processing_fee=entity.processing_fee,
            currency=entity.currency,
            method=entity.method,
            provider=entity.provider,
            description=entity.description,
            extra_metadata=entity.metadata,
            version=entity.version,
            created_at=entity.created_at,
            **self._mutable_values(entity),
        )

    @staticmethod
    def _mutable_values(entity: Payment) -> dict:
        values = {name: getattr(entity, name) for name in _MUTABLE_COLUMNS}
        values["status"] = entity.status.value
        values["refund_status"] = entity.refund_status.value
        return values

    async def _fetch_one(self, *criteria) -> Optional[Payment]:
        result = await self.session.execute(
            select(PaymentModel).where(*criteria).execution_options(populate_existing=True)
        )
        db_payment = result.scalars().first()
        return self._to_entity(db_payment) if db_payment else None

    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        db_payment = self._to_model(payment)
        self.session.add(db_payment)
        try:
            await self.session.flush()
        except IntegrityError as e:
            logger.warning("payment_create_conflict", booking_id=payment.booking_id, error=str(e.orig))
            raise ConflictException(
                "Booking already has a payment in progress or completed",
                details={"booking_id": payment.booking_id},
            ) from e
        logger.info(
            "payment_created",
            payment_id=db_payment.id,
            booking_id=db_payment.booking_id,
            provider=db_payment.provider,
        )
        return self._to_entity(db_payment)

    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        """根据ID获取支付"""
        return await self._fetch_one(PaymentModel.id == payment_id)

    async def get_by_provider_ref(self, provider: str, provider_ref: str) -> Optional[Payment]:
        """根据支付渠道交易ID获取支付"""
        return await self._fetch_one(
            PaymentModel.provider == provider,
            PaymentModel.provider_transaction_id == provider_ref,
        )

    async def find_active_for_booking(self, booking_id: str) -> Optional[Payment]:
        return await self._fetch_one(
            PaymentModel.booking_id == booking_id,
            PaymentModel.status.in_([s.value for s in ACTIVE_STATUSES]),
        )

    async def list_by_booking(self, booking_id: str) -> List[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.booking_id == booking_id)
            .order_by(PaymentModel.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    async def list_stale(
        self,
        statuses: List[PaymentStatus],
        updated_before: datetime,
        limit: int = 100,
    ) -> List[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(
                PaymentModel.status.in_([s.value for s in statuses]),
                PaymentModel.updated_at < updated_before,
            )
            .order_by(PaymentModel.updated_at.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    async def list_stale_refunds(self, updated_before: datetime, limit: int = 100) -> List[Payment]:
        result = await self.session.execute(
            select(PaymentModel)
            .where(
                PaymentModel.refund_status == RefundStatus.PENDING.value,
                PaymentModel.updated_at < updated_before,
            )
            .order_by(PaymentModel.updated_at.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    async def update(self, payment: Payment) -> Payment:
        """按版本号条件更新，失败说明有并发写入"""
        result = await self.session.execute(
            update(PaymentModel)
            .where(PaymentModel.id == payment.id, PaymentModel.version == payment.version)
            .values(version=PaymentModel.version + 1, **self._mutable_values(payment))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StalePaymentError(payment.id, payment.version)
        payment.version += 1

        logger.debug(
            "payment_updated",
            payment_id=payment.id,
            status=payment.status.value,
            refund_status=payment.refund_status.value,
            version=payment.version,
        )
        return payment
