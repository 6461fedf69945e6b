"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from importlib import import_module
from typing import Any, Dict

from ..config.celery import CELERY_IMPORTS, celery_app

PAYMENT_EVENT_TASK = "notifications.payment_event"


class TaskDispatcher:
    """Internal facade used by the application layer to schedule tasks."""

    def send_payment_event(self, event: Dict[str, Any]) -> None:
        """Fire-and-forget delivery of a serialized payment event."""
        self.enqueue(PAYMENT_EVENT_TASK, kwargs={"event": event})

    def enqueue(self, task_name: str, *, args: tuple | None = None, kwargs: Dict[str, Any] | None = None) -> None:
        """Generic escape hatch for scheduling arbitrary tasks by name."""
        # send_task bypasses task_always_eager, so run locally in eager mode
        if celery_app.conf.task_always_eager:
            for module in CELERY_IMPORTS:
                import_module(module)
            celery_app.tasks[task_name].apply(args=args or (), kwargs=kwargs or {})
            return
        celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {})
