"""Company and registration schemas."""
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class CompanyRead(BaseModel):
    id: int
    name: str
    address: str | None = None
    email: EmailStr
    phone_number: str | None = None

    model_config = ConfigDict(from_attributes=True)


class RegistrationCreate(BaseModel):
    company_name: str = Field(min_length=1, max_length=255)
    company_email: EmailStr
    address: str | None = None
    phone_number: str | None = Field(default=None, max_length=50)
    admin_email: EmailStr
    admin_first_name: str | None = Field(default=None, max_length=100)
    admin_last_name: str | None = Field(default=None, max_length=100)


class RegistrationRead(BaseModel):
    company: CompanyRead
    user_id: int
    api_key: str
