"""Payment gateway webhook intake."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status

from geodiag.deps import get_payment_service, get_stripe_client
from geodiag.schemas.payment import WebhookAck
from geodiag.services.payments import PaymentService
from geodiag.services.psp_stripe import StripeClient
from geodiag.utils.errors import ConflictError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/payment", response_model=WebhookAck, status_code=status.HTTP_200_OK)
async def payment_webhook(
    request: Request,
    stripe_client: StripeClient = Depends(get_stripe_client),
    service: PaymentService = Depends(get_payment_service),
) -> WebhookAck:
    """Verify, record and enqueue; the actual processing happens in the worker.

    A redelivered event answers 200 as well so the gateway stops retrying.
    """

    raw_body = await request.body()
    event = stripe_client.construct_webhook_event(raw_body, request.headers.get("Stripe-Signature"))

    try:
        service.queue_payment_webhook(event)
    except ConflictError:
        logger.info("Duplicate webhook ignored", extra={"event_id": event.get("id")})
        return WebhookAck(message="Duplicate event ignored.")
    return WebhookAck(message="Webhook received and queued for processing.")
