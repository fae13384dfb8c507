"""Account API schemas."""

from datetime import datetime

from pydantic import BaseModel

from src.api.core.messages import APIResponse


class AccountModel(BaseModel):
    user_id: str
    balance: int
    lifetime_credits: int
    archived_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


AccountResponse = APIResponse[AccountModel]
