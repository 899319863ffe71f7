"""License schemas."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from geodiag.models.license import LicenseStatus


class LicenseRead(BaseModel):
    id: int
    order_id: int
    company_id: int
    qr_code_payload: str
    status: LicenseStatus
    expires_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
