"""Security dependencies resolving API keys to the calling user."""
from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from geodiag.db import get_db
from geodiag.models.user import User, UserRole
from geodiag.utils.apikey import find_valid_key
from geodiag.utils.errors import error_response
from geodiag.utils.time import utcnow


@dataclass(frozen=True)
class CurrentUser:
    user_id: int
    company_id: int
    role: UserRole
    email: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def _extract_key(
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> str | None:
    """Read the key from ``Authorization: Bearer ...`` or ``X-API-Key``."""
    if x_api_key:
        return x_api_key.strip()
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1].strip()
    return None


def require_user(
    db: Session = Depends(get_db),
    token: str | None = Depends(_extract_key),
) -> CurrentUser:
    """Validate the API key and return the active user it belongs to."""
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("NO_API_KEY", "API key required."),
        )

    key = find_valid_key(db, token)
    if key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_response("UNAUTHORIZED", "Invalid or expired API key"),
        )

    user = db.get(User, key.user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=error_response("USER_INACTIVE", "User not found or inactive."),
        )

    key.last_used_at = utcnow()
    db.commit()
    return CurrentUser(user_id=user.id, company_id=user.company_id, role=user.role, email=user.email)


__all__ = ["CurrentUser", "require_user"]
