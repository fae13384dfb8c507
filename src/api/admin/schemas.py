"""Admin API schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from src.api.core.messages import APIResponse, Paginated


class AdminCreditAdjustmentRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=64)
    # Validated by the ledger so non-positive amounts report INVALID_AMOUNT
    amount: int
    reason: str = Field(min_length=1, max_length=500)


class LedgerEntryModel(BaseModel):
    user_id: str
    transaction_id: UUID
    transaction_type: str
    credit_amount: int
    new_balance: int

    model_config = {"from_attributes": True}


class AdminActivityModel(BaseModel):
    id: UUID
    admin_id: str
    action: str
    target_type: str | None = None
    target_id: str | None = None
    details: dict
    ip_address: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


LedgerEntryResponse = APIResponse[LedgerEntryModel]
AdminActivityResponse = APIResponse[Paginated[AdminActivityModel]]
