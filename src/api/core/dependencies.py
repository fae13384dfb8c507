from typing import Annotated, AsyncGenerator

from fastapi import Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.core.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from src.api.core.exceptions.base import LedgerException
from src.api.core.messages import MessageCode
from src.core.context import AuthenticatedUserContext
from src.modules.admin.service import AdminAdjustmentService
from src.modules.ledger.service import CreditLedgerService
from src.modules.payments.reconciler import PaymentReconciler
from src.modules.usage.charger import ServiceUsageCharger
from src.utils.settings.ledger import ledger_settings


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session from app state."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


async def get_credit_ledger_service(
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> CreditLedgerService:
    """Get credit ledger service with database session."""
    return CreditLedgerService(db)


async def get_service_usage_charger(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ServiceUsageCharger:
    """Get service usage charger bound to the app's inference client."""
    return ServiceUsageCharger(
        db,
        inference=request.app.state.inference_client,
        timeout=ledger_settings.INFERENCE_TIMEOUT_SECONDS,
    )


async def get_payment_reconciler(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> PaymentReconciler:
    """Get payment reconciler; the gateway is None when confirmation is disabled."""
    return PaymentReconciler(db, gateway=request.app.state.payment_gateway)


async def get_admin_adjustment_service(
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> AdminAdjustmentService:
    """Get admin adjustment service with database session."""
    return AdminAdjustmentService(db)


async def get_current_user_authenticated(request: Request) -> AuthenticatedUserContext:
    """Dependency to get the authenticated caller.

    Assumes auth middleware has set request.state.user.
    """
    user = getattr(request.state, "user", None)
    if not user:
        raise LedgerException(MessageCode.AUTH_REQUIRED, status.HTTP_401_UNAUTHORIZED)
    return user


class PaginationParams:
    def __init__(
        self,
        page: Annotated[int, Query(ge=1)] = 1,
        page_size: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
    ):
        self.page = page
        self.page_size = page_size


AsyncSessionDep = Annotated[AsyncSession, Depends(get_db_session)]
CreditLedgerServiceDep = Annotated[
    CreditLedgerService, Depends(get_credit_ledger_service)
]
ServiceUsageChargerDep = Annotated[
    ServiceUsageCharger, Depends(get_service_usage_charger)
]
PaymentReconcilerDep = Annotated[PaymentReconciler, Depends(get_payment_reconciler)]
AdminAdjustmentServiceDep = Annotated[
    AdminAdjustmentService, Depends(get_admin_adjustment_service)
]
PaginationDep = Annotated[PaginationParams, Depends()]

CurrentUserAuthDep = Annotated[
    AuthenticatedUserContext, Depends(get_current_user_authenticated)
]
