"""
Payment domain events.

Dataclass events record payment lifecycle facts for the notification sink.
Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PaymentEvent:
    payment_id: str
    booking_id: str
    client_id: str
    professional_id: str
    provider: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def name(self) -> str:
        return EVENT_NAMES[type(self)]

    def to_dict(self) -> dict:
        data = asdict(self)
        data["occurred_at"] = self.occurred_at.isoformat()
        data["event"] = self.name
        return data


@dataclass
class PaymentCompleted(PaymentEvent):
    amount: int = 0
    currency: str = "COP"
    invoice_id: Optional[str] = None


@dataclass
class PaymentFailed(PaymentEvent):
    reason: Optional[str] = None


@dataclass
class PaymentRefunded(PaymentEvent):
    amount: int = 0
    refund_id: Optional[str] = None
    reason: Optional[str] = None


EVENT_NAMES = {
    PaymentCompleted: "payment_completed",
    PaymentFailed: "payment_failed",
    PaymentRefunded: "payment_refunded",
}
