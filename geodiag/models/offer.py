"""Offer (license plan) model."""
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Offer(Base):
    """A purchasable license plan."""

    __tablename__ = "offers"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_offer_price_non_negative"),
        CheckConstraint("duration_months > 0", name="ck_offer_duration_positive"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    duration_months: Mapped[int] = mapped_column(Integer, nullable=False)
    max_users: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
