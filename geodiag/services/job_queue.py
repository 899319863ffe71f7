"""Database-backed job queue with leased claims and bounded retries."""
from __future__ import annotations

import logging
import os
import socket
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session, sessionmaker

from geodiag import db as db_module
from geodiag.models.job import Job, JobState
from geodiag.utils.time import utcnow

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 3600
MAX_ERROR_LENGTH = 2000


@dataclass(frozen=True)
class QueuedJob:
    """Snapshot of a claimed job handed to a handler."""

    id: int
    job_type: str
    payload: dict[str, Any]
    attempts: int
    max_attempts: int
    lock_token: str = ""


JobHandler = Callable[[QueuedJob], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: ``backoff_seconds * 2 ** (attempt - 1)``, capped at one hour."""

    max_attempts: int = 5
    backoff_seconds: int = 30

    def delay_for(self, attempt: int) -> timedelta:
        seconds = self.backoff_seconds * (2 ** max(attempt - 1, 0))
        return timedelta(seconds=min(seconds, MAX_BACKOFF_SECONDS))


@dataclass
class Subscription:
    job_type: str
    handler: JobHandler
    concurrency: int = 1
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)


def _worker_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


class JobQueue:
    """Durable queue stored in the ``jobs`` table.

    ``enqueue`` writes through the caller's session so the job commits (or rolls
    back) together with whatever else that transaction wrote. Workers claim jobs
    one at a time with a lease; a handler exception puts the job back with a
    backoff until ``max_attempts`` is reached, after which it is marked failed.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        lock_seconds: int = 300,
        poll_seconds: int = 5,
    ) -> None:
        self._session_factory = session_factory
        self.retry_policy = retry_policy or RetryPolicy()
        self.lock_seconds = lock_seconds
        self.poll_seconds = poll_seconds
        self._subscriptions: dict[str, Subscription] = {}

    @property
    def subscriptions(self) -> dict[str, Subscription]:
        return dict(self._subscriptions)

    def _unit_of_work(self):
        return db_module.unit_of_work(self._session_factory)

    # --- producer side -----------------------------------------------------

    def enqueue(
        self,
        db: Session,
        job_type: str,
        payload: dict[str, Any],
        *,
        max_attempts: int | None = None,
        run_after: datetime | None = None,
    ) -> int:
        """Add a job inside the caller's transaction and return its id."""

        subscription = self._subscriptions.get(job_type)
        if max_attempts is None:
            policy = subscription.retry_policy if subscription else self.retry_policy
            max_attempts = policy.max_attempts

        job = Job(
            job_type=job_type,
            payload=dict(payload),
            state=JobState.AVAILABLE,
            attempts=0,
            max_attempts=max_attempts,
            run_after=run_after or utcnow(),
        )
        db.add(job)
        db.flush()
        logger.info("Job enqueued", extra={"job_id": job.id, "job_type": job_type})
        return job.id

    # --- consumer side -----------------------------------------------------

    def subscribe(
        self,
        job_type: str,
        handler: JobHandler,
        *,
        concurrency: int = 1,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Register ``handler`` for ``job_type``; at most ``concurrency`` run at once."""

        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._subscriptions[job_type] = Subscription(
            job_type=job_type,
            handler=handler,
            concurrency=concurrency,
            retry_policy=retry_policy or self.retry_policy,
        )
        logger.info("Job handler subscribed", extra={"job_type": job_type, "concurrency": concurrency})

    def _claim(self, job_type: str) -> QueuedJob | None:
        now = utcnow()
        claimable = and_(
            Job.job_type == job_type,
            or_(
                and_(Job.state == JobState.AVAILABLE, Job.run_after <= now),
                and_(Job.state == JobState.LOCKED, Job.locked_until < now),
            ),
        )
        token = f"{_worker_id()}:{uuid4().hex[:12]}"

        with self._unit_of_work() as db:
            candidate = db.scalar(
                select(Job.id)
                .where(claimable)
                .order_by(Job.run_after, Job.id)
                .limit(1)
                .with_for_update(skip_locked=True)
            )
            if candidate is None:
                return None

            result = db.execute(
                update(Job)
                .where(Job.id == candidate, claimable)
                .values(
                    state=JobState.LOCKED,
                    locked_until=now + timedelta(seconds=self.lock_seconds),
                    locked_by=token,
                    attempts=Job.attempts + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                # Another worker won the race for this row.
                return None

            job = db.get(Job, candidate, populate_existing=True)
            if job is None:
                return None
            return QueuedJob(
                id=job.id,
                job_type=job.job_type,
                payload=dict(job.payload),
                attempts=job.attempts,
                max_attempts=job.max_attempts,
                lock_token=token,
            )

    def _finish(self, job: QueuedJob, values: dict[str, Any]) -> bool:
        """Write the outcome only while ``job`` still holds its lease.

        Once the lease expired and another worker reclaimed the row, ``locked_by``
        no longer matches and the late result is discarded.
        """

        with self._unit_of_work() as db:
            result = db.execute(
                update(Job)
                .where(Job.id == job.id, Job.state == JobState.LOCKED, Job.locked_by == job.lock_token)
                .values(locked_until=None, locked_by=None, **values)
                .execution_options(synchronize_session=False)
            )
            finished = result.rowcount == 1
        if not finished:
            logger.warning(
                "Job lease lost; result discarded",
                extra={"job_id": job.id, "job_type": job.job_type, "attempt": job.attempts},
            )
        return finished

    def _record_success(self, job: QueuedJob) -> None:
        if not self._finish(job, {"state": JobState.COMPLETED, "completed_at": utcnow(), "last_error": None}):
            return
        logger.info(
            "Job completed",
            extra={"job_id": job.id, "job_type": job.job_type, "attempt": job.attempts},
        )

    def _record_failure(self, job: QueuedJob, exc: BaseException, policy: RetryPolicy) -> None:
        error_text = f"{type(exc).__name__}: {exc}"[:MAX_ERROR_LENGTH]
        if job.attempts >= job.max_attempts:
            if not self._finish(job, {"state": JobState.FAILED, "last_error": error_text}):
                return
            logger.error(
                "Job failed permanently after exhausting retries",
                extra={
                    "job_id": job.id,
                    "job_type": job.job_type,
                    "attempts": job.attempts,
                    "error": error_text,
                },
            )
            return

        delay = policy.delay_for(job.attempts)
        if not self._finish(
            job,
            {"state": JobState.AVAILABLE, "run_after": utcnow() + delay, "last_error": error_text},
        ):
            return
        logger.warning(
            "Job failed; rescheduled",
            extra={
                "job_id": job.id,
                "job_type": job.job_type,
                "attempt": job.attempts,
                "retry_in_seconds": int(delay.total_seconds()),
                "error": error_text,
            },
        )

    def work_once(self, job_type: str) -> bool:
        """Claim and run one job of ``job_type``; return False when none is due."""

        subscription = self._subscriptions.get(job_type)
        if subscription is None:
            raise KeyError(f"No handler subscribed for job type '{job_type}'")

        job = self._claim(job_type)
        if job is None:
            return False

        logger.info(
            "Processing job",
            extra={"job_id": job.id, "job_type": job.job_type, "attempt": job.attempts},
        )
        try:
            subscription.handler(job)
        except Exception as exc:  # noqa: BLE001 - any handler failure triggers the retry policy
            self._record_failure(job, exc, subscription.retry_policy)
        else:
            self._record_success(job)
        return True

    def drain(self, job_type: str, *, limit: int | None = None) -> int:
        """Run due jobs of ``job_type`` until none is left (or ``limit`` is hit)."""

        processed = 0
        while limit is None or processed < limit:
            if not self.work_once(job_type):
                break
            processed += 1
        return processed

    def schedule(self, scheduler) -> None:
        """Register one polling job per subscription on an APScheduler scheduler.

        ``max_instances`` bounds how many drains of the same type overlap, which is
        the per-type concurrency.
        """

        for job_type, subscription in self._subscriptions.items():
            scheduler.add_job(
                self.drain,
                "interval",
                seconds=self.poll_seconds,
                args=[job_type],
                id=f"jobs:{job_type}",
                max_instances=subscription.concurrency,
                coalesce=True,
                replace_existing=True,
                next_run_time=utcnow(),
            )

    # --- introspection -----------------------------------------------------

    def counts_by_state(self, db: Session) -> dict[str, int]:
        rows = db.execute(select(Job.state, func.count()).group_by(Job.state)).all()
        counts = {state.value: 0 for state in JobState}
        for state, count in rows:
            counts[JobState(state).value] = int(count)
        return counts


__all__ = ["JobQueue", "JobHandler", "QueuedJob", "RetryPolicy", "Subscription"]
