"""Celery application configuration"""
from __future__ import annotations

import os
from core.logging_config import get_logger
from celery import Celery
from kombu import Queue

from core.config import settings
from .beat import CELERY_BEAT_SCHEDULE


# Modules that register tasks; the worker and the eager dispatcher import these.
CELERY_IMPORTS = (
    "infrastructure.tasks.tasks",
    "infrastructure.tasks.payment_tasks",
)


celery_app = Celery("service_payments")

celery_app.conf.update(
    # Redis is the broker; env variables cover deployments without REDIS__URL.
    broker_url=settings.redis.url or os.getenv("CELERY_BROKER_URL"),
    result_backend=settings.redis.url or os.getenv("CELERY_RESULT_BACKEND"),
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Acknowledge after the work is done so retries are possible.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_default_retry_delay=5,
    task_queues=(
        Queue("high"),
        Queue("default"),
        Queue("low"),
    ),
    task_routes={
        "notifications.*": {"queue": "high"},
        "payments.*": {"queue": "low"},
    },
    # Event delivery is fire-and-forget; only the sweep reports a result.
    task_annotations={
        "notifications.payment_event": {"ignore_result": True},
        "payments.sweep_stale": {"soft_time_limit": 120, "time_limit": 180},
    },
    # Eager delivery failures stay inside the task result, away from payment flows.
    task_eager_propagates=False,
    beat_schedule=CELERY_BEAT_SCHEDULE,
)

celery_app.conf.imports = CELERY_IMPORTS

environment = getattr(settings, "ENVIRONMENT", "production") or "production"
if environment.lower() in {"development", "dev", "test", "testing"}:
    celery_app.conf.task_always_eager = True

celery_app.autodiscover_tasks(packages=CELERY_IMPORTS)


logger = get_logger(__name__)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info("celery_configured", broker=sender.conf.broker_url, result_backend=sender.conf.result_backend)
