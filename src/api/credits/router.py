"""Credits domain router."""

from fastapi import APIRouter

from src.api.core.dependencies import (
    CreditLedgerServiceDep,
    CurrentUserAuthDep,
    PaginationDep,
)
from src.api.core.messages import (
    APIResponse,
    MessageCode,
    Paginated,
    build_pagination,
)
from src.api.credits.schemas import (
    BalanceModel,
    BalanceResponse,
    TransactionHistoryResponse,
    TransactionModel,
)

router = APIRouter(
    prefix="/credits",
    tags=["credits"],
)


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    ledger: CreditLedgerServiceDep,
    current_user: CurrentUserAuthDep,
) -> BalanceResponse:
    """Current spendable balance of the caller."""
    account = await ledger.get_account(current_user.user_id)
    return APIResponse.success(
        message_code=MessageCode.SUCCESS,
        data=BalanceModel(
            user_id=account.user_id,
            balance=account.balance,
            lifetime_credits=account.lifetime_credits,
        ),
    )


@router.get("/transactions", response_model=TransactionHistoryResponse)
async def get_transactions(
    ledger: CreditLedgerServiceDep,
    current_user: CurrentUserAuthDep,
    pagination: PaginationDep,
) -> TransactionHistoryResponse:
    """Caller's transaction history, newest first."""
    transactions, total = await ledger.list_transactions(
        current_user.user_id, pagination.page, pagination.page_size
    )
    items = [TransactionModel.model_validate(tx) for tx in transactions]
    paginated_data = Paginated[TransactionModel](
        items=items,
        pagination=build_pagination(
            total, pagination.page, pagination.page_size, len(items)
        ),
    )
    return APIResponse.success(message_code=MessageCode.SUCCESS, data=paginated_data)
