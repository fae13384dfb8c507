"""Payments domain router."""

from fastapi import APIRouter

from src.api.core.dependencies import (
    CurrentUserAuthDep,
    PaginationDep,
    PaymentReconcilerDep,
)
from src.api.core.exceptions.errors import UnknownOrder
from src.api.core.messages import (
    APIResponse,
    MessageCode,
    Paginated,
    build_pagination,
)
from src.api.payments.schemas import (
    ConfirmOrderRequest,
    ConfirmOrderResponse,
    ConfirmOutcomeModel,
    CreditPackageModel,
    CreditPackagesResponse,
    FailOrderRequest,
    OrderHistoryResponse,
    OrderModel,
    OrderResponse,
    PrepareOrderRequest,
    PreparedOrderModel,
    PreparedOrderResponse,
)
from src.modules.payments.reconciler import PaymentReconciler
from src.utils.settings.payments import payment_settings

router = APIRouter(
    prefix="/payments",
    tags=["payments"],
)


async def _get_own_order(reconciler: PaymentReconciler, order_id: str, user_id: str):
    order = await reconciler.get_order(order_id)
    if order.user_id != user_id:
        # Other users' orders are indistinguishable from missing ones
        raise UnknownOrder(order_id)
    return order


@router.get("/packages", response_model=CreditPackagesResponse)
async def list_packages(
    reconciler: PaymentReconcilerDep,
) -> CreditPackagesResponse:
    """Credit packages available for purchase."""
    packages = [
        CreditPackageModel.model_validate(package)
        for package in reconciler.list_packages()
    ]
    return APIResponse.success(message_code=MessageCode.SUCCESS, data=packages)


@router.post("/orders", response_model=PreparedOrderResponse)
async def prepare_order(
    body: PrepareOrderRequest,
    reconciler: PaymentReconcilerDep,
    current_user: CurrentUserAuthDep,
) -> PreparedOrderResponse:
    """Create a pending order before the client opens the payment window."""
    order = await reconciler.prepare_order(current_user.user_id, body.package_id)
    data = PreparedOrderModel(
        **OrderModel.model_validate(order).model_dump(),
        client_key=payment_settings.PAYMENT_CLIENT_KEY,
    )
    return APIResponse.success(message_code=MessageCode.ORDER_PREPARED, data=data)


@router.get("/orders", response_model=OrderHistoryResponse)
async def list_orders(
    reconciler: PaymentReconcilerDep,
    current_user: CurrentUserAuthDep,
    pagination: PaginationDep,
) -> OrderHistoryResponse:
    """Caller's payment orders, newest first."""
    orders, total = await reconciler.list_orders(
        current_user.user_id, pagination.page, pagination.page_size
    )
    items = [OrderModel.model_validate(order) for order in orders]
    paginated_data = Paginated[OrderModel](
        items=items,
        pagination=build_pagination(
            total, pagination.page, pagination.page_size, len(items)
        ),
    )
    return APIResponse.success(message_code=MessageCode.SUCCESS, data=paginated_data)


@router.post("/confirm", response_model=ConfirmOrderResponse)
async def confirm_order(
    body: ConfirmOrderRequest,
    reconciler: PaymentReconcilerDep,
    current_user: CurrentUserAuthDep,
) -> ConfirmOrderResponse:
    """Confirm a payment after the gateway redirects the client back."""
    await _get_own_order(reconciler, body.order_id, current_user.user_id)
    outcome = await reconciler.confirm_order(
        body.order_id, body.payment_key, body.amount
    )
    return APIResponse.success(
        message_code=MessageCode.ORDER_CONFIRMED,
        data=ConfirmOutcomeModel.model_validate(outcome),
    )


@router.post("/fail", response_model=OrderResponse)
async def fail_order(
    body: FailOrderRequest,
    reconciler: PaymentReconcilerDep,
    current_user: CurrentUserAuthDep,
) -> OrderResponse:
    """Record a payment the client abandoned or the gateway declined."""
    await _get_own_order(reconciler, body.order_id, current_user.user_id)
    reason = f"{body.code}: {body.reason}" if body.code else body.reason
    order = await reconciler.fail_order(body.order_id, reason)
    return APIResponse.success(
        message_code=MessageCode.ORDER_FAILED,
        data=OrderModel.model_validate(order),
    )
