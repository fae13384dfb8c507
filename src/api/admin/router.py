"""Admin credit adjustment and audit router."""

from datetime import datetime

from fastapi import APIRouter, Request

from src.api.admin.schemas import (
    AdminActivityModel,
    AdminActivityResponse,
    AdminCreditAdjustmentRequest,
    LedgerEntryModel,
    LedgerEntryResponse,
)
from src.api.core.decorators.admin import admin
from src.api.core.dependencies import (
    AdminAdjustmentServiceDep,
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
from src.api.credits.schemas import TransactionHistoryResponse, TransactionModel
from src.database.models import AdminAction
from src.modules.admin.service import ActivityFilters
from src.utils.logger import get_client_ip

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
)


@router.post("/credits/charge", response_model=LedgerEntryResponse)
@admin()
async def admin_charge_credits(
    request: Request,
    body: AdminCreditAdjustmentRequest,
    admin_service: AdminAdjustmentServiceDep,
    current_user: CurrentUserAuthDep,
) -> LedgerEntryResponse:
    """Grant credits to a user."""
    entry = await admin_service.admin_charge(
        admin_id=current_user.user_id,
        user_id=body.user_id,
        amount=body.amount,
        reason=body.reason,
        ip_address=get_client_ip(request),
    )
    return APIResponse.success(
        message_code=MessageCode.CREDITS_CHARGED,
        data=LedgerEntryModel.model_validate(entry),
    )


@router.post("/credits/deduct", response_model=LedgerEntryResponse)
@admin()
async def admin_deduct_credits(
    request: Request,
    body: AdminCreditAdjustmentRequest,
    admin_service: AdminAdjustmentServiceDep,
    current_user: CurrentUserAuthDep,
) -> LedgerEntryResponse:
    """Deduct credits from a user. Rejected deductions are still audited."""
    entry = await admin_service.admin_deduct(
        admin_id=current_user.user_id,
        user_id=body.user_id,
        amount=body.amount,
        reason=body.reason,
        ip_address=get_client_ip(request),
    )
    return APIResponse.success(
        message_code=MessageCode.CREDITS_DEDUCTED,
        data=LedgerEntryModel.model_validate(entry),
    )


@router.get(
    "/users/{user_id}/transactions", response_model=TransactionHistoryResponse
)
@admin()
async def get_user_transactions(
    request: Request,
    user_id: str,
    ledger: CreditLedgerServiceDep,
    pagination: PaginationDep,
) -> TransactionHistoryResponse:
    """Transaction history of any user."""
    transactions, total = await ledger.list_transactions(
        user_id, pagination.page, pagination.page_size
    )
    items = [TransactionModel.model_validate(tx) for tx in transactions]
    paginated_data = Paginated[TransactionModel](
        items=items,
        pagination=build_pagination(
            total, pagination.page, pagination.page_size, len(items)
        ),
    )
    return APIResponse.success(message_code=MessageCode.SUCCESS, data=paginated_data)


@router.get("/activity", response_model=AdminActivityResponse)
@admin()
async def get_admin_activity(
    request: Request,
    admin_service: AdminAdjustmentServiceDep,
    pagination: PaginationDep,
    admin_id: str | None = None,
    action: AdminAction | None = None,
    target_type: str | None = None,
    target_id: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
) -> AdminActivityResponse:
    """Audit trail of administrator operations, newest first."""
    filters = ActivityFilters(
        admin_id=admin_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        since=since,
        until=until,
    )
    entries, total = await admin_service.list_activity(
        filters, pagination.page, pagination.page_size
    )
    items = [AdminActivityModel.model_validate(entry) for entry in entries]
    paginated_data = Paginated[AdminActivityModel](
        items=items,
        pagination=build_pagination(
            total, pagination.page, pagination.page_size, len(items)
        ),
    )
    return APIResponse.success(message_code=MessageCode.SUCCESS, data=paginated_data)
