"""Service usage API schemas."""

from typing import Any

from pydantic import BaseModel, Field

from src.api.core.messages import APIResponse
from src.modules.usage.constants import MAX_IDEMPOTENCY_KEY_LENGTH


class ChargeServiceRequest(BaseModel):
    service_id: str = Field(min_length=1, max_length=100)
    # Must match the catalog price for catalog services
    cost: int | None = None
    idempotency_key: str | None = Field(
        default=None, min_length=1, max_length=MAX_IDEMPOTENCY_KEY_LENGTH
    )
    payload: dict[str, Any] = Field(default_factory=dict)


class ChargeOutcomeModel(BaseModel):
    service_id: str
    idempotency_key: str
    credits_charged: int
    balance: int
    transaction_id: str
    result: dict[str, Any]
    replayed: bool

    model_config = {"from_attributes": True}


ChargeServiceResponse = APIResponse[ChargeOutcomeModel]
