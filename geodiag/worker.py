"""Standalone job worker: ``python -m geodiag.worker``."""
from __future__ import annotations

import logging
import signal

from apscheduler.schedulers.blocking import BlockingScheduler

from geodiag import db
from geodiag.config import Settings, get_settings
from geodiag.core.logging import setup_logging
from geodiag.core.runtime_state import set_worker_active
from geodiag.deps import get_dispatcher, get_job_queue, get_payment_service
from geodiag.services.job_queue import JobQueue
from geodiag.services.notifications import PAYMENT_SUCCEEDED_JOB, NotificationDispatcher
from geodiag.services.payments import PROCESS_PAYMENT_JOB, PaymentService

logger = logging.getLogger(__name__)


def register_handlers(
    job_queue: JobQueue,
    payment_service: PaymentService,
    dispatcher: NotificationDispatcher,
    settings: Settings,
) -> JobQueue:
    """Subscribe the payment and notification handlers on ``job_queue``."""

    job_queue.subscribe(
        PROCESS_PAYMENT_JOB,
        payment_service.handle_payment_job,
        concurrency=settings.PAYMENT_JOB_CONCURRENCY,
    )
    job_queue.subscribe(
        PAYMENT_SUCCEEDED_JOB,
        dispatcher.handle_job,
        concurrency=settings.NOTIFICATION_JOB_CONCURRENCY,
    )
    return job_queue


def build_worker_queue() -> JobQueue:
    return register_handlers(get_job_queue(), get_payment_service(), get_dispatcher(), get_settings())


def main() -> None:
    setup_logging()
    settings = get_settings()
    db.init_engine()
    job_queue = build_worker_queue()

    scheduler = BlockingScheduler(
        job_defaults={"misfire_grace_time": settings.WORKER_POLL_SECONDS * 2},
    )
    job_queue.schedule(scheduler)

    def _shutdown(signum, frame) -> None:
        logger.info("Worker shutting down", extra={"signal": signum})
        scheduler.shutdown(wait=True)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    logger.info(
        "Worker started",
        extra={"env": settings.app_env, "job_types": sorted(job_queue.subscriptions)},
    )
    set_worker_active(True)
    try:
        scheduler.start()
    finally:
        set_worker_active(False)
        db.close_engine()
        logger.info("Worker stopped")


if __name__ == "__main__":
    main()
