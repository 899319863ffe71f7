"""License lookups for the caller's company."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from geodiag.db import get_db
from geodiag.schemas.license import LicenseRead
from geodiag.security import CurrentUser, require_user
from geodiag.services.licenses import find_active_license
from geodiag.utils.errors import NotFoundError

router = APIRouter(prefix="/licenses", tags=["licenses"])


@router.get("/active", response_model=LicenseRead)
def get_active_license(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(require_user),
):
    license_ = find_active_license(db, current_user.company_id)
    if license_ is None:
        raise NotFoundError("No active license for this company.", code="LICENSE_NOT_FOUND")
    return license_
