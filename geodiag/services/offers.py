"""Offer catalogue lookups."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from geodiag.models import Offer
from geodiag.utils.errors import NotFoundError


def list_public_offers(db: Session) -> list[Offer]:
    stmt = select(Offer).where(Offer.is_public.is_(True)).order_by(Offer.price, Offer.id)
    return list(db.scalars(stmt))


def get_offer(db: Session, offer_id: int, *, public_only: bool = True) -> Offer:
    offer = db.get(Offer, offer_id)
    if offer is None or (public_only and not offer.is_public):
        raise NotFoundError("Offer not found.", code="OFFER_NOT_FOUND", details={"offer_id": offer_id})
    return offer


__all__ = ["list_public_offers", "get_offer"]
