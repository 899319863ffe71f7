"""Offer schemas."""
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class OfferRead(BaseModel):
    id: int
    name: str
    description: str | None = None
    price: Decimal
    duration_months: int
    max_users: int | None = None
    is_public: bool = True

    model_config = ConfigDict(from_attributes=True)
