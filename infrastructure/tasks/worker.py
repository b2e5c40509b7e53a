"""Celery worker entry point for the payment and settlement queues.

Deployments normally run ``celery -A infrastructure.tasks.config.celery worker``;
``marketplace-worker`` starts the same worker with the queue list below and,
with ``--beat``, the embedded scheduler that triggers settlement runs.
"""
from __future__ import annotations

import sys
from typing import Optional, Sequence

from core.logging_config import configure_logging, get_logger

from .config.celery import celery_app

QUEUES = ("payments", "settlements", "default")

logger = get_logger(__name__)


def build_argv(argv: Sequence[str]) -> list[str]:
    beat = "--beat" in argv
    args = ["worker", "--loglevel=INFO", f"--queues={','.join(QUEUES)}", "--hostname=settlement@%h"]
    if beat:
        args.append("--beat")
    return args


def main(argv: Optional[Sequence[str]] = None) -> None:
    configure_logging()
    args = build_argv(sys.argv[1:] if argv is None else argv)
    logger.info("celery_worker_starting", queues=list(QUEUES), beat="--beat" in args)
    celery_app.worker_main(argv=args)


if __name__ == "__main__":
    main()
