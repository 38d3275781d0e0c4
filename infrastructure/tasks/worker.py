"""Run a billing worker: webhook deliveries, emails and periodic cleanup.

``python -m infrastructure.tasks.worker`` consumes every queue; pass
``--queues webhooks`` (or any comma separated subset) to split the load.
"""
from __future__ import annotations

import argparse

from celery.signals import setup_logging

from core.logging_config import configure_logging

from .config.celery import celery_app

ALL_QUEUES = ("webhooks", "default", "low")


@setup_logging.connect
def _use_structlog(**kwargs) -> None:
    # 连接该信号后 Celery 不再改写根 logger
    configure_logging()


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Hosting billing Celery worker")
    parser.add_argument("--queues", default=",".join(ALL_QUEUES))
    parser.add_argument("--concurrency", type=int, default=None)
    parser.add_argument("--beat", action="store_true", help="embed the beat scheduler")
    args = parser.parse_args(argv)

    worker_args = ["worker", "--hostname", "billing-worker@%h", "--queues", args.queues, "--loglevel", "INFO"]
    if args.concurrency:
        worker_args += ["--concurrency", str(args.concurrency)]
    if args.beat:
        worker_args.append("--beat")
    celery_app.worker_main(worker_args)


if __name__ == "__main__":
    main()
