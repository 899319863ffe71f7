"""Company sign-up: tenant, first administrator and API key."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from geodiag.models import ApiKey, Company, User, UserRole
from geodiag.schemas.company import RegistrationCreate
from geodiag.utils.apikey import gen_key
from geodiag.utils.audit import log_audit
from geodiag.utils.errors import ConflictError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Registration:
    company: Company
    user: User
    api_key: str


def register_company(db: Session, data: RegistrationCreate) -> Registration:
    """Create the company, its admin user and a first API key in one commit.

    The raw key is only returned here; the database keeps its HMAC.
    """

    company_filter = [Company.email == data.company_email]
    if data.phone_number:
        company_filter.append(Company.phone_number == data.phone_number)
    if db.scalars(select(Company.id).where(or_(*company_filter))).first() is not None:
        raise ConflictError("A company with this email or phone number already exists.", code="COMPANY_EXISTS")
    if db.scalars(select(User.id).where(User.email == data.admin_email)).first() is not None:
        raise ConflictError("A user with this email already exists.", code="USER_EXISTS")

    company = Company(
        name=data.company_name,
        address=data.address,
        email=data.company_email,
        phone_number=data.phone_number,
    )
    user = User(
        company=company,
        email=data.admin_email,
        first_name=data.admin_first_name,
        last_name=data.admin_last_name,
        role=UserRole.ADMIN,
        is_active=True,
    )
    raw, prefix, key_hash = gen_key()
    db.add_all([company, user])
    try:
        db.flush()
        db.add(ApiKey(user_id=user.id, name="default", prefix=prefix, key_hash=key_hash, is_active=True))
        log_audit(
            db,
            actor=f"user:{user.id}",
            action="COMPANY_REGISTERED",
            entity="Company",
            entity_id=company.id,
            data={"email": company.email, "phone_number": company.phone_number, "api_key": prefix},
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Registration conflicts with an existing account.", code="REGISTRATION_CONFLICT") from exc

    logger.info("Company registered", extra={"company_id": company.id, "user_id": user.id})
    return Registration(company=company, user=user, api_key=raw)


__all__ = ["Registration", "register_company"]
