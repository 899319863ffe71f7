"""Stripe SDK wrapper for checkout sessions and webhook verification."""
from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import stripe

from geodiag.config import Settings, get_settings
from geodiag.utils.errors import BadRequestError, InternalProcessingError

if TYPE_CHECKING:  # pragma: no cover - hints only
    from geodiag.models import Offer, Order

WEBHOOK_TOLERANCE_SECONDS = 300


def _to_cents(amount: Decimal) -> int:
    """Convert a decimal amount to the smallest currency unit expected by Stripe."""

    normalized = Decimal(str(amount)).quantize(Decimal("0.01"))
    return int((normalized * 100).to_integral_value())


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: str


class StripeClient:
    """Wrapper around the Stripe Python SDK to isolate gateway concerns."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._secret_key = settings.STRIPE_SECRET_KEY
        self._webhook_secret = settings.STRIPE_WEBHOOK_SECRET

        if not self._secret_key:
            raise RuntimeError("Stripe secret key is missing; configure STRIPE_SECRET_KEY.")

        stripe.api_key = self._secret_key

    @classmethod
    def from_env(cls) -> "StripeClient":
        """Instantiate a client using the cached application settings."""

        return cls(get_settings())

    def create_checkout_session(self, order: "Order", offer: "Offer") -> CheckoutSession:
        """Create a hosted checkout session for one order.

        ``metadata`` carries the order and company ids; the completion webhook has
        no other way to find the order back.
        """

        frontend = self.settings.FRONTEND_URL
        try:
            session = stripe.checkout.Session.create(
                payment_method_types=["card"],
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": self.settings.CHECKOUT_CURRENCY,
                            "product_data": {"name": f"Licence Geodiag - {offer.name}"},
                            "unit_amount": _to_cents(offer.price),
                        },
                        "quantity": 1,
                    }
                ],
                metadata={"orderId": str(order.id), "companyId": str(order.company_id)},
                success_url=f"{frontend}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{frontend}/payment/cancel",
            )
        except stripe.StripeError as exc:
            raise InternalProcessingError(
                "Payment gateway refused the checkout session.",
                code="CHECKOUT_SESSION_FAILED",
                details={"order_id": order.id},
            ) from exc
        return CheckoutSession(session_id=session.id, url=session.url)

    def construct_webhook_event(self, payload: bytes, sig_header: str | None) -> dict[str, Any]:
        """Verify the ``Stripe-Signature`` header and return the decoded event."""

        if not self._webhook_secret:
            raise RuntimeError(
                "Stripe webhook secret is missing; configure STRIPE_WEBHOOK_SECRET for verification."
            )
        if not sig_header:
            raise BadRequestError("Stripe-Signature header is required.", code="WEBHOOK_SIGNATURE_MISSING")

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                sig_header,
                self._webhook_secret,
                WEBHOOK_TOLERANCE_SECONDS,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError) as exc:
            raise BadRequestError("Invalid webhook signature.", code="WEBHOOK_SIGNATURE_INVALID") from exc

        try:
            event = json.loads(payload)
        except ValueError as exc:
            raise BadRequestError("Invalid webhook payload.", code="WEBHOOK_PAYLOAD_INVALID") from exc
        if not isinstance(event, dict):
            raise BadRequestError("Invalid webhook payload.", code="WEBHOOK_PAYLOAD_INVALID")
        return event


__all__ = ["StripeClient", "CheckoutSession"]
