"""Background work for the payment broker: event delivery and the stale sweep.

The API only talks to `TaskDispatcher`; Celery stays behind this package.
"""
from .config.celery import celery_app
from .utils.dispatcher import TaskDispatcher

__all__ = ["celery_app", "TaskDispatcher"]
