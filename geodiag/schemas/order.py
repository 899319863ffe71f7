"""Order schemas."""
from datetime import datetime
from decimal import Decimal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from geodiag.models.order import OrderStatus


class OrderCreate(BaseModel):
    offer_id: int = Field(validation_alias=AliasChoices("offer_id", "offerId"))


class OrderRead(BaseModel):
    id: int
    company_id: int
    offer_id: int
    order_number: str
    amount: Decimal
    status: OrderStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
