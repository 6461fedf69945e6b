"""
Notification sink port. Delivery is best-effort and never part of a
payment transaction.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from domain.payment.events import PaymentEvent


@runtime_checkable
class NotificationSink(Protocol):
    def notify(self, event: PaymentEvent) -> None: ...
