"""Helpers shared by payment tasks and their callers."""
from .dispatcher import PAYMENT_EVENT_TASK, TaskDispatcher
from .base_task import BaseTask

__all__ = ["PAYMENT_EVENT_TASK", "TaskDispatcher", "BaseTask"]
