"""Paid service usage router."""

from typing import Annotated

from fastapi import APIRouter, Header, status

from src.api.core.dependencies import CurrentUserAuthDep, ServiceUsageChargerDep
from src.api.core.exceptions.base import LedgerException
from src.api.core.messages import APIResponse, MessageCode
from src.api.usage.schemas import (
    ChargeOutcomeModel,
    ChargeServiceRequest,
    ChargeServiceResponse,
)
from src.modules.usage.charger import resolve_request_cost
from src.modules.usage.constants import (
    IDEMPOTENCY_KEY_HEADER,
    MAX_IDEMPOTENCY_KEY_LENGTH,
)

router = APIRouter(
    prefix="/usage",
    tags=["usage"],
)


@router.post("/charge", response_model=ChargeServiceResponse)
async def charge_service(
    body: ChargeServiceRequest,
    charger: ServiceUsageChargerDep,
    current_user: CurrentUserAuthDep,
    idempotency_key: Annotated[
        str | None, Header(alias=IDEMPOTENCY_KEY_HEADER)
    ] = None,
) -> ChargeServiceResponse:
    """Run a paid service, charging its credits exactly once per idempotency key."""
    key = idempotency_key or body.idempotency_key
    if not key or len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise LedgerException(
            MessageCode.INVALID_INPUT,
            status.HTTP_400_BAD_REQUEST,
            {
                "description": f"Provide an '{IDEMPOTENCY_KEY_HEADER}' header "
                f"of at most {MAX_IDEMPOTENCY_KEY_LENGTH} characters"
            },
        )

    outcome = await charger.charge_service(
        user_id=current_user.user_id,
        service_id=body.service_id,
        idempotency_key=key,
        cost=resolve_request_cost(body.service_id, body.cost),
        payload=body.payload,
    )
    return APIResponse.success(
        message_code=MessageCode.SERVICE_CHARGED,
        data=ChargeOutcomeModel.model_validate(outcome),
    )
