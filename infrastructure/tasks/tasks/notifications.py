"""Payment notification tasks"""
from __future__ import annotations

from typing import Any, Dict

from celery import shared_task

from ..utils.base_task import BaseTask
from core.logging_config import get_logger

logger = get_logger(__name__)


@shared_task(
    name="notifications.payment_event",
    bind=True,
    base=BaseTask,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def deliver_payment_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
    """Deliver a payment event to the client and the professional.

    Replace the body with real channel integrations (email/push/SMS).
    """
    recipients = [r for r in (event.get("client_id"), event.get("professional_id")) if r]
    logger.info(
        "payment_event_delivered",
        event_name=event.get("event"),
        event_id=event.get("event_id"),
        payment_id=event.get("payment_id"),
        recipients=recipients,
    )
    return {"event_id": event.get("event_id"), "recipients": recipients}
