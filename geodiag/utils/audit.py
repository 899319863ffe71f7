"""Audit logging helper utilities."""
from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy.orm import Session

from geodiag.models.audit import AuditLog
from geodiag.utils.time import utcnow


SENSITIVE_KEYS = {
    "email",
    "phone_number",
    "gateway_ref",
    "qr_code_payload",
    "api_key",
}


def _mask_value(key: str, value: Any) -> Any:
    if value is None:
        return None

    if key == "email":
        text = str(value)
        if "@" in text:
            _, domain = text.split("@", 1)
            return f"***@{domain}"
        return "***"

    if key == "phone_number":
        digits = str(value).replace(" ", "")
        return f"***{digits[-2:]}"

    if key in {"gateway_ref", "qr_code_payload"}:
        text = str(value)
        if len(text) <= 6:
            return "***"
        return f"***{text[-4:]}"

    return "***"


def sanitize_payload_for_audit(data: Any) -> Any:
    """Return a copy of ``data`` with obvious PII fields masked."""

    if isinstance(data, Mapping):
        sanitized: dict[str, Any] = {}
        for key, value in data.items():
            masked_value = _mask_value(key, value) if key in SENSITIVE_KEYS else value
            sanitized[key] = sanitize_payload_for_audit(masked_value)
        return sanitized

    if isinstance(data, list):
        return [sanitize_payload_for_audit(item) for item in data]

    return data


def log_audit(
    db: Session,
    *,
    actor: str,
    action: str,
    entity: str,
    entity_id: int | None,
    data: dict | None = None,
) -> None:
    """Persist an audit entry in the shared AuditLog table."""

    db.add(
        AuditLog(
            actor=actor,
            action=action,
            entity=entity,
            entity_id=entity_id if entity_id is not None else 0,
            data_json=sanitize_payload_for_audit(data or {}),
            at=utcnow(),
        )
    )


def actor_from_user(user: Any, fallback: str = "system") -> str:
    """Return the canonical actor string for an authenticated caller."""

    user_id = getattr(user, "user_id", None)
    if user_id is not None:
        return f"user:{user_id}"
    return fallback


__all__ = ["sanitize_payload_for_audit", "log_audit", "actor_from_user", "SENSITIVE_KEYS"]
