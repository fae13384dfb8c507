"""Typed ledger errors raised by the domain services."""

from fastapi import status

from ..messages import MessageCode
from .base import LedgerException


class AccountNotFound(LedgerException):
    def __init__(self, user_id: str):
        super().__init__(
            MessageCode.ACCOUNT_NOT_FOUND,
            status.HTTP_404_NOT_FOUND,
            {"user_id": user_id},
        )


class AccountArchived(LedgerException):
    def __init__(self, user_id: str):
        super().__init__(
            MessageCode.ACCOUNT_ARCHIVED,
            status.HTTP_409_CONFLICT,
            {"user_id": user_id},
        )


class InvalidAmount(LedgerException):
    def __init__(self, amount: int):
        super().__init__(
            MessageCode.INVALID_AMOUNT,
            status.HTTP_400_BAD_REQUEST,
            {"amount": amount},
        )


class InsufficientCredits(LedgerException):
    """Balance is lower than the requested debit. Nothing was written."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            MessageCode.INSUFFICIENT_CREDITS,
            status.HTTP_402_PAYMENT_REQUIRED,
            {"required": required, "available": available, "action": "top_up"},
        )


class InvalidPackage(LedgerException):
    def __init__(self, package_id: str):
        super().__init__(
            MessageCode.INVALID_PACKAGE,
            status.HTTP_400_BAD_REQUEST,
            {"package_id": package_id},
        )


class UnknownService(LedgerException):
    def __init__(self, service_id: str):
        super().__init__(
            MessageCode.UNKNOWN_SERVICE,
            status.HTTP_400_BAD_REQUEST,
            {"service_id": service_id},
        )


class ServicePriceMismatch(LedgerException):
    def __init__(self, service_id: str, price: int, requested: int):
        super().__init__(
            MessageCode.SERVICE_PRICE_MISMATCH,
            status.HTTP_400_BAD_REQUEST,
            {"service_id": service_id, "price": price, "requested": requested},
        )


class UnknownOrder(LedgerException):
    def __init__(self, order_id: str):
        super().__init__(
            MessageCode.UNKNOWN_ORDER,
            status.HTTP_404_NOT_FOUND,
            {"order_id": order_id},
        )


class AmountMismatch(LedgerException):
    def __init__(self, order_id: str, expected: int, received: int):
        super().__init__(
            MessageCode.AMOUNT_MISMATCH,
            status.HTTP_400_BAD_REQUEST,
            {"order_id": order_id, "expected": expected, "received": received},
        )


class OrderStateConflict(LedgerException):
    """Order already reached the opposite terminal state."""

    def __init__(self, message_code: MessageCode, order_id: str):
        super().__init__(
            message_code,
            status.HTTP_409_CONFLICT,
            {"order_id": order_id},
        )


class PaymentRejected(LedgerException):
    def __init__(self, order_id: str, gateway_status: str | None):
        super().__init__(
            MessageCode.PAYMENT_REJECTED,
            status.HTTP_402_PAYMENT_REQUIRED,
            {"order_id": order_id, "gateway_status": gateway_status},
        )


class RequestInProgress(LedgerException):
    def __init__(self, idempotency_key: str):
        super().__init__(
            MessageCode.REQUEST_IN_PROGRESS,
            status.HTTP_409_CONFLICT,
            {"idempotency_key": idempotency_key, "retryable": True},
        )


class LedgerConflict(LedgerException):
    """Optimistic version check kept failing. Safe to retry."""

    def __init__(self, details: dict | None = None):
        super().__init__(
            MessageCode.CONFLICT,
            status.HTTP_409_CONFLICT,
            {"retryable": True, **(details or {})},
        )


class StorageFailure(LedgerException):
    def __init__(self, details: dict | None = None):
        super().__init__(
            MessageCode.STORAGE_FAILURE,
            status.HTTP_503_SERVICE_UNAVAILABLE,
            details,
        )


class ExternalCollaboratorFailure(LedgerException):
    def __init__(self, details: dict | None = None):
        super().__init__(
            MessageCode.EXTERNAL_SERVICE_ERROR,
            status.HTTP_502_BAD_GATEWAY,
            details,
        )
