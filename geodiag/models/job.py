"""Durable job queue persistence model."""
import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum as SqlEnum, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class JobState(str, enum.Enum):
    """Lifecycle of a queued job."""

    AVAILABLE = "available"
    LOCKED = "locked"
    COMPLETED = "completed"
    FAILED = "failed"


class Job(Base):
    """A unit of background work, claimed by at most one worker at a time."""

    __tablename__ = "jobs"
    __table_args__ = (
        Index("ix_jobs_type_state_run_after", "job_type", "state", "run_after"),
    )

    job_type: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    state: Mapped[JobState] = mapped_column(SqlEnum(JobState), nullable=False, default=JobState.AVAILABLE)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    run_after: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    locked_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
