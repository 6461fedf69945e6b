"""Common base task for payment jobs"""
from __future__ import annotations

from celery import Task
from core.logging_config import get_logger

logger = get_logger(__name__)

# Keys worth surfacing from task kwargs; full payloads may carry customer data.
_TRACE_KEYS = ("payment_id", "event_id", "limit")


def _trace(kwargs) -> dict:
    kwargs = kwargs or {}
    event = kwargs.get("event") if isinstance(kwargs.get("event"), dict) else {}
    traced = {key: kwargs[key] for key in _TRACE_KEYS if key in kwargs}
    traced.update({key: event[key] for key in ("payment_id", "event_id") if key in event})
    return traced


class BaseTask(Task):
    """Structured lifecycle logging without dumping task payloads."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.error(
            "celery_task_failure",
            task_id=task_id,
            task_name=self.name,
            exc=str(exc),
            **_trace(kwargs),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.warning(
            "celery_task_retry",
            task_id=task_id,
            task_name=self.name,
            retries=self.request.retries,
            exc=str(exc),
            **_trace(kwargs),
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        logger.info("celery_task_success", task_id=task_id, task_name=self.name, **_trace(kwargs))
        super().on_success(retval, task_id, args, kwargs)
