"""
Celery-backed notification sink. Events are serialized and handed to the
task queue; delivery happens out of band.
"""
from __future__ import annotations

from typing import Optional

from domain.payment.events import PaymentEvent
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


class CeleryNotificationSink:
    def __init__(self, dispatcher: Optional[TaskDispatcher] = None) -> None:
        self.dispatcher = dispatcher or TaskDispatcher()

    def notify(self, event: PaymentEvent) -> None:
        self.dispatcher.send_payment_event(event.to_dict())
