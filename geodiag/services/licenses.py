"""License issuance and lookup."""
from __future__ import annotations

import logging
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from geodiag.config import get_settings
from geodiag.models import License, LicenseStatus, Offer, Order
from geodiag.utils.time import add_months, utcnow

logger = logging.getLogger(__name__)


def build_qr_payload(company_id: int, prefix: str | None = None) -> str:
    """Return ``<prefix><company_id>-<random uuid>``."""

    if prefix is None:
        prefix = get_settings().QR_CODE_PREFIX
    return f"{prefix}{company_id}-{uuid4()}"


def create_license_for_order(db: Session, order: Order, offer: Offer) -> License:
    """Create the license for a paid order inside the caller's transaction."""

    license_ = License(
        order_id=order.id,
        company_id=order.company_id,
        qr_code_payload=build_qr_payload(order.company_id),
        status=LicenseStatus.ACTIVE,
        expires_at=add_months(utcnow(), offer.duration_months),
    )
    db.add(license_)
    db.flush()
    logger.info(
        "License issued",
        extra={"license_id": license_.id, "order_id": order.id, "company_id": order.company_id},
    )
    return license_


def get_license_for_order(db: Session, order_id: int) -> License | None:
    return db.scalars(select(License).where(License.order_id == order_id)).first()


def find_active_license(db: Session, company_id: int) -> License | None:
    """Return the company's active license that has not expired yet."""

    stmt = (
        select(License)
        .where(
            License.company_id == company_id,
            License.status == LicenseStatus.ACTIVE,
            License.expires_at > utcnow(),
        )
        .order_by(License.expires_at.desc())
    )
    return db.scalars(stmt).first()


__all__ = [
    "build_qr_payload",
    "create_license_for_order",
    "get_license_for_order",
    "find_active_license",
]
