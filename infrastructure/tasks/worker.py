"""Entry point for the payment worker.

Consumes every queue by default; pass ``--beat`` to embed the scheduler
that drives the stale-payment sweep (single-node deployments only).
"""
from __future__ import annotations

import sys

from .config.celery import celery_app

DEFAULT_QUEUES = "high,default,low"


def main(argv: list[str] | None = None) -> None:
    extra = list(sys.argv[1:] if argv is None else argv)
    args = ["worker", "--loglevel=INFO", "--hostname=payments@%h", f"--queues={DEFAULT_QUEUES}"]
    if "--beat" in extra:
        extra.remove("--beat")
        args.append("--beat")
    celery_app.worker_main(argv=args + extra)


if __name__ == "__main__":
    main()
