"""Company registration endpoint."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from geodiag.db import get_db
from geodiag.schemas.company import CompanyRead, RegistrationCreate, RegistrationRead
from geodiag.services.registration import register_company

router = APIRouter(tags=["registration"])


@router.post("/register", response_model=RegistrationRead, status_code=status.HTTP_201_CREATED)
def register(payload: RegistrationCreate, db: Session = Depends(get_db)) -> RegistrationRead:
    """Create a company with its admin user; the API key is shown only once."""
    registration = register_company(db, payload)
    return RegistrationRead(
        company=CompanyRead.model_validate(registration.company),
        user_id=registration.user.id,
        api_key=registration.api_key,
    )
