"""Schemas for checkout, webhook and payment entities."""
from datetime import datetime
from decimal import Decimal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from geodiag.models.payment import PaymentMethod, PaymentStatus

from .company import CompanyRead
from .license import LicenseRead
from .offer import OfferRead
from .order import OrderRead


class CheckoutSessionCreate(BaseModel):
    order_id: int = Field(validation_alias=AliasChoices("orderId", "order_id"))


class CheckoutSessionRead(BaseModel):
    session_id: str = Field(serialization_alias="sessionId")
    url: str


class WebhookAck(BaseModel):
    message: str


class PaymentRead(BaseModel):
    id: int
    order_id: int
    gateway_ref: str | None
    amount: Decimal
    status: PaymentStatus
    method: PaymentMethod
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationPayload(BaseModel):
    """Everything the confirmation email needs, serialisable as a job payload."""

    order: OrderRead
    company: CompanyRead | None = None
    offer: OfferRead
    license: LicenseRead
