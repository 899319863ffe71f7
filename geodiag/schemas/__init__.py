"""Schema package exports."""
from .company import CompanyRead, RegistrationCreate, RegistrationRead
from .license import LicenseRead
from .offer import OfferRead
from .order import OrderCreate, OrderRead
from .payment import (
    CheckoutSessionCreate,
    CheckoutSessionRead,
    NotificationPayload,
    PaymentRead,
    WebhookAck,
)

__all__ = [
    "CheckoutSessionCreate",
    "CheckoutSessionRead",
    "CompanyRead",
    "LicenseRead",
    "NotificationPayload",
    "OfferRead",
    "OrderCreate",
    "OrderRead",
    "PaymentRead",
    "RegistrationCreate",
    "RegistrationRead",
    "WebhookAck",
]
