"""Accounts domain router."""

from fastapi import APIRouter

from src.api.accounts.schemas import AccountModel, AccountResponse
from src.api.core.dependencies import CreditLedgerServiceDep, CurrentUserAuthDep
from src.api.core.messages import APIResponse, MessageCode

router = APIRouter(
    prefix="/accounts",
    tags=["accounts"],
)


@router.post("", response_model=AccountResponse)
async def open_account(
    ledger: CreditLedgerServiceDep,
    current_user: CurrentUserAuthDep,
) -> AccountResponse:
    """Open the caller's credit account. Returns the existing one when already open."""
    account = await ledger.open_account(current_user.user_id)
    return APIResponse.success(
        message_code=MessageCode.ACCOUNT_CREATED,
        data=AccountModel.model_validate(account),
    )
