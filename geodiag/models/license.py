"""License model definitions."""
import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum as SqlEnum, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class LicenseStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class License(Base):
    """The entitlement granted to a company once its order is paid."""

    __tablename__ = "licenses"
    __table_args__ = (Index("ix_licenses_company_status", "company_id", "status"),)

    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="RESTRICT"), unique=True, nullable=False
    )
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    qr_code_payload: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    status: Mapped[LicenseStatus] = mapped_column(
        SqlEnum(LicenseStatus), nullable=False, default=LicenseStatus.ACTIVE
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
