"""Checkout session endpoint."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from geodiag.db import get_db
from geodiag.deps import get_payment_service
from geodiag.schemas.payment import CheckoutSessionCreate, CheckoutSessionRead
from geodiag.security import CurrentUser, require_user
from geodiag.services.payments import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-checkout-session", response_model=CheckoutSessionRead)
def create_checkout_session(
    payload: CheckoutSessionCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_user),
    service: PaymentService = Depends(get_payment_service),
) -> CheckoutSessionRead:
    session = service.create_checkout_session(db, payload.order_id, current_user)
    return CheckoutSessionRead(session_id=session.session_id, url=session.url)
