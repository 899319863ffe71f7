"""Process-wide runtime flags shared across modules."""
from __future__ import annotations

_worker_active = False


def set_worker_active(active: bool) -> None:
    global _worker_active
    _worker_active = active


def is_worker_active() -> bool:
    return _worker_active
