"""Municipal policy administration and validation endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.domains.policy.models import PolicyDraft, PolicyUpdate
from src.services import Services, get_services

router = APIRouter(prefix="/api/v1/policies", tags=["policies"])


class PolicyCreateRequest(BaseModel):
    admin_id: str = Field(min_length=1)
    admin_did: str = Field(min_length=1)
    policy: PolicyDraft


class PolicyUpdateRequest(BaseModel):
    admin_id: str = Field(min_length=1)
    admin_did: str = Field(min_length=1)
    updates: PolicyUpdate


class ValidateRequest(BaseModel):
    user_id: str = Field(min_length=1)
    merchant_id: str = Field(min_length=1)
    amount: float
    timestamp: datetime | None = None
    user_credentials: list[str] = Field(default_factory=list)
    municipality_id: str | None = None


class MerchantRequest(BaseModel):
    merchant_id: str = Field(min_length=1)
    categories: list[str] = Field(default_factory=list)
    region: str | None = None
    municipality_id: str | None = None


@router.post("")
async def create_policy(
    request: PolicyCreateRequest, services: Services = Depends(get_services)
) -> dict:
    policy = await services.policies.create_policy(
        request.policy, request.admin_id, request.admin_did
    )
    return policy.model_dump(mode="json")


@router.get("")
async def list_policies(
    municipality_id: str | None = None, services: Services = Depends(get_services)
) -> dict:
    items = await services.policies.get_policies(municipality_id)
    return {"items": [p.model_dump(mode="json") for p in items], "total": len(items)}


@router.post("/validate")
async def validate_transaction(
    request: ValidateRequest, services: Services = Depends(get_services)
) -> dict:
    result = await services.policies.validate_transaction(
        user_id=request.user_id,
        merchant_id=request.merchant_id,
        amount=request.amount,
        timestamp=request.timestamp or datetime.now(UTC),
        user_credentials=request.user_credentials,
        municipality_id=request.municipality_id,
    )
    return result.model_dump(mode="json")


@router.post("/merchants")
async def register_merchant(
    request: MerchantRequest, services: Services = Depends(get_services)
) -> dict:
    merchant = await services.policies.register_merchant(
        request.merchant_id, request.categories, request.region, request.municipality_id
    )
    return merchant.model_dump(mode="json")


@router.get("/{policy_id}")
async def get_policy(policy_id: str, services: Services = Depends(get_services)) -> dict:
    policy = await services.policies.get_policy(policy_id)
    if policy is None:
        raise LookupError(f"Policy {policy_id} not found")
    return policy.model_dump(mode="json")


@router.patch("/{policy_id}")
async def update_policy(
    policy_id: str, request: PolicyUpdateRequest, services: Services = Depends(get_services)
) -> dict:
    policy = await services.policies.update_policy(
        policy_id, request.updates, request.admin_id, request.admin_did
    )
    if policy is None:
        raise LookupError(f"Policy {policy_id} not found")
    return policy.model_dump(mode="json")
