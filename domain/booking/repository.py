"""
服务预约仓储接口
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Booking, BookingPaymentStatus


class BookingRepository(ABC):

    @abstractmethod
    async def get_by_id(self, booking_id: str) -> Optional[Booking]:
        pass

    @abstractmethod
    async def set_payment_status(self, booking_id: str, status: BookingPaymentStatus) -> None:
        pass

    @abstractmethod
    async def create(self, booking: Booking) -> Booking:
        pass
