"""Payment authorization endpoint."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.domains.aml.models import TransactionEvent
from src.services import Services, get_services

router = APIRouter(prefix="/api/v1/payments", tags=["payments"])


class AuthorizeRequest(BaseModel):
    transaction: TransactionEvent
    merchant_id: str = Field(min_length=1)
    user_credentials: list[str] = Field(default_factory=list)
    municipality_id: str | None = None


@router.post("/authorize")
async def authorize_payment(
    request: AuthorizeRequest, services: Services = Depends(get_services)
) -> dict:
    """Run the AML and policy gates; settlement proceeds only if ``allowed``."""
    result = await services.payments.authorize(
        request.transaction,
        request.merchant_id,
        request.user_credentials,
        request.municipality_id,
    )
    return result.public_view()
