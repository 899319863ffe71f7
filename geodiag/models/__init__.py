"""ORM models package."""
from .api_key import ApiKey
from .audit import AuditLog
from .base import Base
from .company import Company
from .job import Job, JobState
from .license import License, LicenseStatus
from .offer import Offer
from .order import Order, OrderStatus
from .payment import Payment, PaymentMethod, PaymentStatus
from .user import User, UserRole
from .webhook_event import ProcessedWebhookEvent

__all__ = [
    "ApiKey",
    "AuditLog",
    "Base",
    "Company",
    "Job",
    "JobState",
    "License",
    "LicenseStatus",
    "Offer",
    "Order",
    "OrderStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "ProcessedWebhookEvent",
    "User",
    "UserRole",
]
