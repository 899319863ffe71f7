"""Idempotency markers for payment gateway webhook events."""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from geodiag.models.webhook_event import ProcessedWebhookEvent
from geodiag.utils.errors import BadRequestError, ConflictError
from geodiag.utils.time import utcnow

logger = logging.getLogger(__name__)


def record_event(db: Session, event_id: str, event_type: str | None = None) -> ProcessedWebhookEvent:
    """Insert the marker for ``event_id`` inside the caller's transaction.

    The unique constraint on ``event_id`` decides: a second insert of the same id,
    including a concurrent one, raises ``ConflictError`` and the caller must roll
    back its unit of work.
    """

    if not event_id:
        raise BadRequestError("Webhook event id is missing.", code="MISSING_EVENT_ID")

    marker = ProcessedWebhookEvent(event_id=event_id, event_type=event_type, received_at=utcnow())
    db.add(marker)
    try:
        db.flush()
    except IntegrityError as exc:
        logger.warning("Duplicate webhook event", extra={"event_id": event_id, "event_type": event_type})
        raise ConflictError(
            "Webhook event already processed.",
            code="WEBHOOK_DUPLICATE",
            details={"event_id": event_id},
        ) from exc
    return marker


def is_recorded(db: Session, event_id: str) -> bool:
    stmt = select(ProcessedWebhookEvent.id).where(ProcessedWebhookEvent.event_id == event_id)
    return db.scalar(stmt) is not None


__all__ = ["record_event", "is_recorded"]
