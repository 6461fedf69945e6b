"""
服务预约（Service Request）- 支付模块只读写其中的支付相关字段
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class BookingStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class BookingPaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


PAYABLE_STATUSES = frozenset(
    {BookingStatus.ACCEPTED, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED}
)
# Non-admin clients may only request refunds on these.
CLIENT_REFUNDABLE_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.DISPUTED})


@dataclass
class Booking:
    id: str
    client_id: str
    professional_id: str
    title: str
    status: BookingStatus
    final_price: int
    payment_status: BookingPaymentStatus = BookingPaymentStatus.UNPAID
    category: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self):
        self.status = BookingStatus(self.status)
        self.payment_status = BookingPaymentStatus(self.payment_status)

    def is_payable(self) -> bool:
        return self.status in PAYABLE_STATUSES and self.final_price > 0

    def client_may_refund(self) -> bool:
        return self.status in CLIENT_REFUNDABLE_STATUSES

    def involves(self, user_id: str) -> bool:
        return user_id in (self.client_id, self.professional_id)
