"""
服务预约仓储实现
"""
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.booking.entity import Booking, BookingPaymentStatus, BookingStatus
from domain.booking.repository import BookingRepository
from domain.common.exceptions import NotFoundException
from infrastructure.models.booking import BookingModel


class SQLAlchemyBookingRepository(BookingRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: BookingModel) -> Booking:
        return Booking(
            id=model.id,
            client_id=model.client_id,
            professional_id=model.professional_id,
            title=model.title,
            description=model.description,
            category=model.category,
            status=BookingStatus(model.status),
            payment_status=BookingPaymentStatus(model.payment_status),
            final_price=model.final_price,
        )

    async def get_by_id(self, booking_id: str) -> Optional[Booking]:
        result = await self.session.execute(
            select(BookingModel).where(BookingModel.id == booking_id).execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def set_payment_status(self, booking_id: str, status: BookingPaymentStatus) -> None:
        result = await self.session.execute(
            update(BookingModel)
            .where(BookingModel.id == booking_id)
            .values(payment_status=status.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFoundException("Service request", booking_id)

    async def create(self, booking: Booking) -> Booking:
        self.session.add(
            BookingModel(
                id=booking.id,
                client_id=booking.client_id,
                professional_id=booking.professional_id,
                title=booking.title,
                description=booking.description,
                category=booking.category,
                status=booking.status.value,
                payment_status=booking.payment_status.value,
                final_price=booking.final_price,
            )
        )
        await self.session.flush()
        return booking
