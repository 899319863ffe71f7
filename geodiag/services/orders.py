"""Order creation and tenant-scoped retrieval."""
from __future__ import annotations

import logging
import secrets
import time
from typing import Any

from sqlalchemy.orm import Session

from geodiag.models import Order, OrderStatus, UserRole
from geodiag.services.offers import get_offer
from geodiag.utils.audit import actor_from_user, log_audit
from geodiag.utils.errors import ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)


def generate_order_number() -> str:
    """``ORD-<epoch milliseconds>-<8 hex chars>``."""

    return f"ORD-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def create_order(db: Session, offer_id: int, current_user: Any) -> Order:
    """Create a pending order for the caller's company at the offer's current price."""

    if current_user.role != UserRole.ADMIN:
        raise ForbiddenError("Only company administrators can place orders.", code="ADMIN_REQUIRED")

    offer = get_offer(db, offer_id)
    order = Order(
        company_id=current_user.company_id,
        offer_id=offer.id,
        order_number=generate_order_number(),
        amount=offer.price,
        status=OrderStatus.PENDING,
    )
    db.add(order)
    db.flush()
    log_audit(
        db,
        actor=actor_from_user(current_user),
        action="ORDER_CREATED",
        entity="Order",
        entity_id=order.id,
        data={"offer_id": offer.id, "amount": str(order.amount), "order_number": order.order_number},
    )
    db.commit()
    db.refresh(order)
    logger.info(
        "Order created",
        extra={"order_id": order.id, "company_id": order.company_id, "offer_id": offer.id},
    )
    return order


def get_order_for_user(db: Session, order_id: int, current_user: Any) -> Order:
    order = db.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found.", code="ORDER_NOT_FOUND", details={"order_id": order_id})
    if order.company_id != current_user.company_id:
        raise ForbiddenError("Order does not belong to your company.", code="ORDER_FORBIDDEN")
    return order


__all__ = ["create_order", "get_order_for_user", "generate_order_number"]
