"""Client account routes — registration, profile view and update."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field, field_validator

from flexkit_gateway.api.auth import check_email
from flexkit_gateway.api.dependencies import get_client_info, get_mindbody, require_client
from flexkit_gateway.api.responses import success
from flexkit_gateway.errors import InvalidRequest
from flexkit_gateway.services.client_info import ClientInfoService
from flexkit_gateway.services.mindbody_client import MindbodyClient
from flexkit_gateway.services.otp_authenticator import AuthenticatedClient

router = APIRouter(prefix="/api/client", tags=["client"])

# Request field → Mindbody Client field.
PROFILE_FIELDS = {
    "first_name": "FirstName",
    "last_name": "LastName",
    "email": "Email",
    "mobile_phone": "MobilePhone",
    "birth_date": "BirthDate",
    "gender": "Gender",
    "address_line1": "AddressLine1",
    "address_line2": "AddressLine2",
    "city": "City",
    "state": "State",
    "postal_code": "PostalCode",
    "country": "Country",
    "send_promotional_emails": "SendPromotionalEmails",
}


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str | None = Field(default=None, validate_default=True)
    first_name: str = Field(alias="firstName", min_length=1)
    last_name: str = Field(alias="lastName", min_length=1)
    phone: str | None = None
    terms_accepted: bool = Field(default=False, alias="termsAccepted")
    country: str | None = None
    date_of_birth: str | None = Field(default=None, alias="dateOfBirth")
    gender: str | None = None
    hear_about: str | None = Field(default=None, alias="hearAbout")
    marketing_accepted: bool | None = Field(default=None, alias="marketingAccepted")

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str | None) -> str:
        return check_email(value)


class ProfileUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    email: str | None = None
    mobile_phone: str | None = Field(default=None, alias="mobilePhone")
    birth_date: str | None = Field(default=None, alias="birthDate")
    gender: str | None = None
    address_line1: str | None = Field(default=None, alias="addressLine1")
    address_line2: str | None = Field(default=None, alias="addressLine2")
    city: str | None = None
    state: str | None = None
    postal_code: str | None = Field(default=None, alias="postalCode")
    country: str | None = None
    send_promotional_emails: bool | None = Field(default=None, alias="sendPromotionalEmails")

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str | None) -> str | None:
        return None if value is None else check_email(value)

    def to_upstream(self) -> dict[str, Any]:
        return {
            PROFILE_FIELDS[name]: value
            for name, value in self.model_dump(exclude_none=True).items()
        }


@router.post("/register")
async def register(
    body: RegisterRequest,
    mindbody: MindbodyClient = Depends(get_mindbody),
) -> dict:
    result = await mindbody.create_client(body.model_dump())
    return success(result, "Client registered successfully")


@router.get("/complete-info")
async def complete_info(
    start_date: str | None = Query(None),
    end_date: str | None = Query(None),
    current: AuthenticatedClient = Depends(require_client),
    client_info: ClientInfoService = Depends(get_client_info),
) -> dict:
    data = await client_info.complete_info(current.identity.id, start_date, end_date)
    return success(data, "Client information retrieved successfully")


@router.put("/profile")
async def update_profile(
    body: ProfileUpdateRequest,
    current: AuthenticatedClient = Depends(require_client),
    mindbody: MindbodyClient = Depends(get_mindbody),
) -> dict:
    fields = body.to_upstream()
    if not fields:
        raise InvalidRequest("No profile fields to update")
    result = await mindbody.update_client(current.identity.id, fields)
    return success(result, "Profile updated successfully")
