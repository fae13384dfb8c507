"""Credits API schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from src.api.core.messages import APIResponse, Paginated


class BalanceModel(BaseModel):
    user_id: str
    balance: int
    lifetime_credits: int


class TransactionModel(BaseModel):
    id: UUID
    type: str
    credit_amount: int
    credit_balance_after: int
    payment_method: str | None = None
    actual_amount: int | None = None
    reason: str | None = None
    order_id: str | None = None
    service_id: str | None = None
    idempotency_key: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


BalanceResponse = APIResponse[BalanceModel]
TransactionHistoryResponse = APIResponse[Paginated[TransactionModel]]
