"""Payment gateway webhook endpoint."""

import secrets

from fastapi import APIRouter, Request, status
from pydantic import ValidationError

from src.api.core.dependencies import PaymentReconcilerDep
from src.api.core.exceptions.base import LedgerException
from src.api.core.messages import APIResponse, MessageCode
from src.api.payments.schemas import (
    PaymentWebhookEvent,
    WebhookResponse,
    WebhookResultModel,
)
from src.modules.payments.constants import WEBHOOK_SECRET_HEADER
from src.utils.logger import get_logger
from src.utils.settings.payments import payment_settings

logger = get_logger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

MAX_WEBHOOK_PAYLOAD_BYTES = 1024 * 1024


@router.post("/webhook", response_model=WebhookResponse)
async def payment_webhook(
    request: Request,
    reconciler: PaymentReconcilerDep,
) -> WebhookResponse:
    """Apply a gateway payment status change pushed by the gateway."""
    provided_secret = request.headers.get(WEBHOOK_SECRET_HEADER, "")
    expected_secret = payment_settings.PAYMENT_WEBHOOK_SECRET.get_secret_value()
    if not provided_secret or not secrets.compare_digest(
        provided_secret.encode(), expected_secret.encode()
    ):
        logger.warning("Rejected payment webhook with invalid secret")
        raise LedgerException(
            MessageCode.INVALID_WEBHOOK_SIGNATURE,
            status.HTTP_401_UNAUTHORIZED,
        )

    payload = await request.body()
    if not payload:
        raise LedgerException(
            MessageCode.BAD_REQUEST,
            status.HTTP_400_BAD_REQUEST,
            details={"description": "Empty webhook payload"},
        )
    if len(payload) > MAX_WEBHOOK_PAYLOAD_BYTES:
        raise LedgerException(
            MessageCode.BAD_REQUEST,
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            details={"description": "Webhook payload too large"},
        )

    try:
        event = PaymentWebhookEvent.model_validate_json(payload)
    except ValidationError as e:
        raise LedgerException(
            MessageCode.INVALID_INPUT,
            status.HTTP_400_BAD_REQUEST,
            details={"description": "Malformed webhook payload", "errors": e.error_count()},
        )

    data = event.data
    logger.info(
        "Payment webhook received",
        event_type=event.event_type,
        order_id=data.order_id,
        gateway_status=data.status,
    )
    result = await reconciler.apply_gateway_status(
        order_id=data.order_id,
        status=data.status,
        gateway_payment_id=data.payment_key,
        amount=data.total_amount,
        payment_method=data.method,
    )
    return APIResponse.success(
        message_code=MessageCode.SUCCESS,
        data=WebhookResultModel(
            order_id=data.order_id,
            status=data.status,
            applied=result is not None,
        ),
    )
