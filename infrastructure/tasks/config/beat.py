"""Celery beat schedule configuration.

The stale-payment sweep is the only periodic job; its interval comes from
PaymentSettings so deployments can tune it without code changes.
"""
from __future__ import annotations

from core.settings import payment_settings

CELERY_BEAT_SCHEDULE = {
    "payments-sweep-stale": {
        "task": "payments.sweep_stale",
        "schedule": float(payment_settings.sweep_interval_seconds),
        "options": {"queue": "low"},
    },
}
