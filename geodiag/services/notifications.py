"""Post-payment notification: invoice PDF plus confirmation email."""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Literal

from pydantic import ValidationError
from sqlalchemy.orm import Session, sessionmaker

from geodiag import db as db_module
from geodiag.schemas.payment import NotificationPayload
from geodiag.services.invoices import generate_invoice_pdf
from geodiag.services.job_queue import JobQueue, QueuedJob
from geodiag.services.mailer import EmailSender
from geodiag.utils.errors import BadRequestError

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED_JOB = "payment_succeeded"

NotificationMode = Literal["queued", "inline"]


class NotificationDispatcher:
    """Send the license confirmation for a completed order.

    In ``queued`` mode ``dispatch`` only enqueues a ``payment_succeeded`` job and
    the worker calls ``handle_job``, which re-raises so the queue retries.
    ``enqueue`` does the same through a caller's session, so the job commits
    together with the payment that triggered it. In
    ``inline`` mode ``dispatch`` sends right away and swallows the failure after
    logging it.
    """

    def __init__(
        self,
        mailer: EmailSender,
        *,
        job_queue: JobQueue | None = None,
        session_factory: sessionmaker[Session] | None = None,
        mode: NotificationMode = "queued",
        render_invoice: Callable[..., bytes] = generate_invoice_pdf,
    ) -> None:
        if mode == "queued" and job_queue is None:
            raise ValueError("A job queue is required for queued notifications")
        self.mailer = mailer
        self.job_queue = job_queue
        self.mode = mode
        self._session_factory = session_factory
        self._render_invoice = render_invoice

    def handle(self, payload: NotificationPayload | dict[str, Any]) -> bool:
        """Render and send; return False when there is nobody to notify."""

        if not isinstance(payload, NotificationPayload):
            try:
                payload = NotificationPayload.model_validate(payload)
            except ValidationError as exc:
                raise BadRequestError(
                    "Invalid notification payload.", code="NOTIFICATION_PAYLOAD_INVALID"
                ) from exc

        if payload.company is None:
            logger.warning(
                "Notification skipped: company not found",
                extra={"order_id": payload.order.id, "company_id": payload.order.company_id},
            )
            return False

        pdf_bytes = self._render_invoice(payload.order, payload.company, payload.offer)
        self.mailer.send_license_and_invoice(payload.company, payload.license, pdf_bytes)
        logger.info(
            "License confirmation sent",
            extra={"order_id": payload.order.id, "company_id": payload.company.id},
        )
        return True

    def handle_job(self, job: QueuedJob) -> None:
        try:
            self.handle(job.payload)
        except Exception:
            logger.exception(
                "Notification job failed",
                extra={"job_id": job.id, "attempt": job.attempts},
            )
            raise

    def enqueue(self, db: Session, payload: NotificationPayload) -> int:
        """Add a ``payment_succeeded`` job inside the caller's transaction."""

        if self.job_queue is None:
            raise RuntimeError("Notification dispatcher has no job queue")
        job_id = self.job_queue.enqueue(db, PAYMENT_SUCCEEDED_JOB, payload.model_dump(mode="json"))
        logger.info("Notification queued", extra={"order_id": payload.order.id, "job_id": job_id})
        return job_id

    def dispatch(self, payload: NotificationPayload) -> str:
        """Hand ``payload`` over according to the configured mode.

        Returns ``"queued"``, ``"sent"``, ``"skipped"`` or ``"failed"``.
        """

        if self.mode == "queued":
            with db_module.unit_of_work(self._session_factory) as db:
                self.enqueue(db, payload)
            return "queued"

        try:
            sent = self.handle(payload)
        except Exception:  # noqa: BLE001 - notification must not affect the paid order
            logger.exception("Inline notification failed", extra={"order_id": payload.order.id})
            return "failed"
        return "sent" if sent else "skipped"


__all__ = ["NotificationDispatcher", "PAYMENT_SUCCEEDED_JOB"]
