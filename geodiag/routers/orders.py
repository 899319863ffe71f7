"""Order endpoints, scoped to the caller's company."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from geodiag.db import get_db
from geodiag.schemas.order import OrderCreate, OrderRead
from geodiag.security import CurrentUser, require_user
from geodiag.services import orders as orders_service

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: OrderCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_user),
):
    return orders_service.create_order(db, payload.offer_id, current_user)


@router.get("/{order_id}", response_model=OrderRead)
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_user),
):
    return orders_service.get_order_for_user(db, order_id, current_user)
