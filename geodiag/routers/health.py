"""Health check endpoint."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text

from geodiag.config import get_settings
from geodiag.core.runtime_state import is_worker_active
from geodiag.db import get_engine, get_sessionmaker
from geodiag.deps import get_job_queue
from geodiag.services.job_queue import JobQueue

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger(__name__)


def _db_status() -> str:
    """Return 'ok' if the DB is reachable, 'error' otherwise."""

    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return "ok"
    except Exception:  # noqa: BLE001
        logger.exception("DB health check failed")
        return "error"


def _queue_depth(job_queue: JobQueue) -> dict[str, int] | None:
    try:
        with get_sessionmaker()() as session:
            return job_queue.counts_by_state(session)
    except Exception:  # noqa: BLE001
        logger.exception("Queue depth check failed")
        return None


@router.get("", summary="Health check")
def healthcheck(job_queue: JobQueue = Depends(get_job_queue)) -> dict[str, object]:
    """Return database, gateway and worker status with the job counts per state."""

    settings = get_settings()
    db_status = _db_status()
    db_ok = db_status == "ok"
    queue = _queue_depth(job_queue) if db_ok else None
    return {
        "status": "ok" if db_ok else "degraded",
        "db_ok": db_ok,
        "db_status": db_status,
        "stripe": {
            "api_key_configured": bool(settings.STRIPE_SECRET_KEY),
            "webhook_configured": bool(settings.STRIPE_WEBHOOK_SECRET),
        },
        "worker_config_enabled": bool(settings.WORKER_ENABLED),
        "worker_running": is_worker_active(),
        "notification_mode": settings.NOTIFICATION_MODE,
        "jobs": queue,
    }
