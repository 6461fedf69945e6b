"""
Periodic payment maintenance: fail payments stuck in pending/processing.
"""
from __future__ import annotations

import asyncio

from celery import shared_task

from core.logging_config import get_logger
from .utils.base_task import BaseTask


logger = get_logger(__name__)


async def _sweep(limit: int) -> list[str]:
    from infrastructure.bootstrap import build_payment_services

    services = build_payment_services()
    try:
        return await services.lifecycle.sweep_stale_payments(limit=limit)
    finally:
        await services.aclose()


@shared_task(name="payments.sweep_stale", bind=True, base=BaseTask, max_retries=3, default_retry_delay=30)
def sweep_stale_payments(self, limit: int = 100):
    try:
        failed = asyncio.run(_sweep(limit))
    except Exception as exc:  # pragma: no cover
        logger.error("stale_payment_sweep_failed", error=str(exc))
        raise self.retry(exc=exc)
    return {"failed": failed}
