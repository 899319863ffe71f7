"""Service wiring for routes and the worker.

Each builder is cached so the API process shares one queue, one dispatcher and
one payment service. Tests replace them through ``app.dependency_overrides``.
"""
from __future__ import annotations

from functools import lru_cache

from geodiag.config import get_settings
from geodiag.services.job_queue import JobQueue, RetryPolicy
from geodiag.services.mailer import EmailSender
from geodiag.services.notifications import NotificationDispatcher
from geodiag.services.payments import PaymentService
from geodiag.services.psp_stripe import StripeClient


@lru_cache
def get_job_queue() -> JobQueue:
    settings = get_settings()
    return JobQueue(
        retry_policy=RetryPolicy(
            max_attempts=settings.JOB_MAX_ATTEMPTS,
            backoff_seconds=settings.JOB_BACKOFF_SECONDS,
        ),
        lock_seconds=settings.JOB_LOCK_SECONDS,
        poll_seconds=settings.WORKER_POLL_SECONDS,
    )


@lru_cache
def get_stripe_client() -> StripeClient:
    return StripeClient.from_env()


@lru_cache
def get_mailer() -> EmailSender:
    return EmailSender(get_settings())


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(
        get_mailer(),
        job_queue=get_job_queue(),
        mode=get_settings().NOTIFICATION_MODE,
    )


@lru_cache
def get_payment_service() -> PaymentService:
    return PaymentService(
        gateway=get_stripe_client(),
        job_queue=get_job_queue(),
        dispatcher=get_dispatcher(),
    )


def reset_services() -> None:
    """Drop cached services (used by tests and on shutdown)."""

    for builder in (get_payment_service, get_dispatcher, get_mailer, get_stripe_client, get_job_queue):
        builder.cache_clear()


__all__ = [
    "get_job_queue",
    "get_stripe_client",
    "get_mailer",
    "get_dispatcher",
    "get_payment_service",
    "reset_services",
]
