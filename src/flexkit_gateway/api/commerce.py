"""Commerce routes — catalogue lookups and contract purchases."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import AliasChoices, BaseModel, Field

from flexkit_gateway.api.dependencies import get_mindbody, get_settings, require_client
from flexkit_gateway.api.responses import success
from flexkit_gateway.config import Settings
from flexkit_gateway.errors import NotFound
from flexkit_gateway.services.mindbody_client import MindbodyClient
from flexkit_gateway.services.otp_authenticator import AuthenticatedClient

router = APIRouter(prefix="/api", tags=["commerce"])


class CreditCard(BaseModel):
    number: str = Field(min_length=12)
    exp_month: int = Field(ge=1, le=12)
    exp_year: int = Field(ge=2000)
    cvc: str | None = None
    billing_name: str = ""
    billing_address: str = ""
    billing_city: str = ""
    billing_state: str = ""
    billing_postal_code: str = ""


class ContractPurchaseRequest(BaseModel):
    contract_id: int = Field(gt=0)
    location_id: int = Field(gt=0)
    payment_type: str = Field(default="CreditCard", alias="paymentType")
    credit_card: CreditCard | None = None
    promotion_code: str | None = None
    override_payment_amount: float | None = Field(default=None, alias="overridePaymentAmount")
    discount_amount: float | None = Field(default=None, alias="discountAmount")

    model_config = {"populate_by_name": True}


class PurchaseRequest(ContractPurchaseRequest):
    """Lenient purchase form: ``id`` is accepted for the contract and the
    location falls back to the studio default."""

    contract_id: int = Field(gt=0, validation_alias=AliasChoices("contract_id", "id"))
    location_id: int | None = Field(default=None, gt=0)


class PurchaseDetailsRequest(BaseModel):
    type: Literal["service", "contract"] = "service"
    id: int = Field(gt=0)
    location_id: int | None = None


async def _purchase(
    body: ContractPurchaseRequest,
    client_id: str,
    location_id: int,
    mindbody: MindbodyClient,
) -> dict:
    card = body.credit_card.model_dump() if body.credit_card else None
    return await mindbody.purchase_contract(
        client_id,
        body.contract_id,
        location_id,
        payment_type=body.payment_type,
        credit_card=card,
        promotion_code=body.promotion_code,
        override_payment_amount=body.override_payment_amount,
        discount_amount=body.discount_amount,
    )


# ── Purchases ────────────────────────────────────────────


@router.post("/purchase/contract")
async def purchase_contract(
    body: ContractPurchaseRequest,
    current: AuthenticatedClient = Depends(require_client),
    mindbody: MindbodyClient = Depends(get_mindbody),
) -> dict:
    result = await _purchase(body, current.identity.id, body.location_id, mindbody)
    return success(result, "Contract purchased successfully")


@router.post("/purchase")
async def purchase(
    body: PurchaseRequest,
    current: AuthenticatedClient = Depends(require_client),
    mindbody: MindbodyClient = Depends(get_mindbody),
    settings: Settings = Depends(get_settings),
) -> dict:
    location_id = body.location_id or settings.default_location_id
    result = await _purchase(body, current.identity.id, location_id, mindbody)
    return success(result, "Purchase completed successfully")


@router.post("/purchase/details")
async def purchase_details(
    body: PurchaseDetailsRequest,
    mindbody: MindbodyClient = Depends(get_mindbody),
) -> dict:
    if body.type == "contract":
        contract = await mindbody.get_contract(body.id, body.location_id)
        if contract is None:
            raise NotFound("Contract not found")
        return success(contract, "Contract details retrieved successfully")

    service = await mindbody.get_service(body.id)
    if service is None:
        raise NotFound("Service not found")
    return success(service, "Service details retrieved successfully")


# ── Catalogue ────────────────────────────────────────────


@router.get("/contracts")
async def contracts(
    location_id: int | None = Query(None),
    mindbody: MindbodyClient = Depends(get_mindbody),
) -> dict:
    return success(await mindbody.get_contracts(location_id), "Contracts retrieved successfully")


@router.get("/promotions")
async def promotions(mindbody: MindbodyClient = Depends(get_mindbody)) -> dict:
    return success(await mindbody.get_promotions(), "Promotion codes retrieved successfully")


@router.get("/services")
async def services(mindbody: MindbodyClient = Depends(get_mindbody)) -> dict:
    return success(await mindbody.get_services(), "Services retrieved successfully")
