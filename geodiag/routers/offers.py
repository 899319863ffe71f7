"""Public offer catalogue."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from geodiag.db import get_db
from geodiag.schemas.offer import OfferRead
from geodiag.services import offers as offers_service

router = APIRouter(prefix="/offers", tags=["offers"])


@router.get("", response_model=list[OfferRead])
def list_offers(db: Session = Depends(get_db)):
    return offers_service.list_public_offers(db)


@router.get("/{offer_id}", response_model=OfferRead)
def get_offer(offer_id: int, db: Session = Depends(get_db)):
    return offers_service.get_offer(db, offer_id)
