"""Centralized message codes and default messages for API responses."""

from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel


class MessageCode(str, Enum):
    """Centralized message codes for API responses."""

    # Success codes
    SUCCESS = "SUCCESS"

    # Authentication & Authorization
    AUTH_REQUIRED = "AUTH_REQUIRED"
    FORBIDDEN = "FORBIDDEN"
    INVALID_TOKEN = "INVALID_TOKEN"
    ADMIN_REQUIRED = "ADMIN_REQUIRED"

    # Accounts
    ACCOUNT_CREATED = "ACCOUNT_CREATED"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    ACCOUNT_ARCHIVED = "ACCOUNT_ARCHIVED"

    # Credit management
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    CREDITS_CHARGED = "CREDITS_CHARGED"
    CREDITS_DEDUCTED = "CREDITS_DEDUCTED"

    # Service usage
    SERVICE_CHARGED = "SERVICE_CHARGED"
    UNKNOWN_SERVICE = "UNKNOWN_SERVICE"
    SERVICE_PRICE_MISMATCH = "SERVICE_PRICE_MISMATCH"
    REQUEST_IN_PROGRESS = "REQUEST_IN_PROGRESS"

    # Payments
    ORDER_PREPARED = "ORDER_PREPARED"
    ORDER_CONFIRMED = "ORDER_CONFIRMED"
    ORDER_FAILED = "ORDER_FAILED"
    INVALID_PACKAGE = "INVALID_PACKAGE"
    UNKNOWN_ORDER = "UNKNOWN_ORDER"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    ORDER_ALREADY_CONFIRMED = "ORDER_ALREADY_CONFIRMED"
    ORDER_ALREADY_FAILED = "ORDER_ALREADY_FAILED"
    PAYMENT_REJECTED = "PAYMENT_REJECTED"
    INVALID_WEBHOOK_SIGNATURE = "INVALID_WEBHOOK_SIGNATURE"

    # Concurrency & storage
    CONFLICT = "CONFLICT"
    STORAGE_FAILURE = "STORAGE_FAILURE"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"

    # Service Errors
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"


# Default messages for each message code
DEFAULT_MESSAGES = {
    # Success messages
    MessageCode.SUCCESS: "Operation completed successfully",
    # Authentication & Authorization
    MessageCode.AUTH_REQUIRED: "Authentication required",
    MessageCode.FORBIDDEN: "Access denied",
    MessageCode.INVALID_TOKEN: "Invalid authentication token",
    MessageCode.ADMIN_REQUIRED: "Administrator privileges required",
    # Accounts
    MessageCode.ACCOUNT_CREATED: "Credit account created",
    MessageCode.ACCOUNT_NOT_FOUND: "Credit account not found",
    MessageCode.ACCOUNT_ARCHIVED: "Credit account is archived",
    # Credit management
    MessageCode.INSUFFICIENT_CREDITS: "Insufficient credits. Top up credits to continue.",
    MessageCode.INVALID_AMOUNT: "Credit amount must be a positive integer",
    MessageCode.CREDITS_CHARGED: "Credits added to account",
    MessageCode.CREDITS_DEDUCTED: "Credits deducted from account",
    # Service usage
    MessageCode.SERVICE_CHARGED: "Service completed and charged",
    MessageCode.UNKNOWN_SERVICE: "Unknown service",
    MessageCode.SERVICE_PRICE_MISMATCH: "Requested cost does not match the service price",
    MessageCode.REQUEST_IN_PROGRESS: "A request with this idempotency key is still in progress",
    # Payments
    MessageCode.ORDER_PREPARED: "Order prepared",
    MessageCode.ORDER_CONFIRMED: "Payment confirmed and credits granted",
    MessageCode.ORDER_FAILED: "Order marked as failed",
    MessageCode.INVALID_PACKAGE: "Invalid credit package",
    MessageCode.UNKNOWN_ORDER: "Order not found",
    MessageCode.AMOUNT_MISMATCH: "Paid amount does not match the order. Please retry the purchase.",
    MessageCode.ORDER_ALREADY_CONFIRMED: "Order has already been confirmed",
    MessageCode.ORDER_ALREADY_FAILED: "Order has already failed. Please retry the purchase.",
    MessageCode.PAYMENT_REJECTED: "Payment was not approved by the gateway",
    MessageCode.INVALID_WEBHOOK_SIGNATURE: "Invalid webhook signature",
    # Concurrency & storage
    MessageCode.CONFLICT: "Concurrent update detected, please retry",
    MessageCode.STORAGE_FAILURE: "Storage temporarily unavailable, please retry",
    # Validation errors
    MessageCode.VALIDATION_ERROR: "Validation failed",
    MessageCode.INVALID_INPUT: "Invalid input provided",
    # Service Errors
    MessageCode.EXTERNAL_SERVICE_ERROR: "External service error",
    # Generic errors
    MessageCode.INTERNAL_ERROR: "Internal server error",
    MessageCode.INTERNAL_SERVER_ERROR: "Internal server error",
    MessageCode.BAD_REQUEST: "Bad request",
    MessageCode.NOT_FOUND: "Resource not found",
}

T = TypeVar("T")


class PaginationInfo(BaseModel):
    """Common pagination information."""

    total: int
    page: int
    page_size: int
    has_more: bool


class Paginated(BaseModel, Generic[T]):
    """Generic paginated response wrapper."""

    items: list[T]
    pagination: PaginationInfo


class APIResponse(BaseModel, Generic[T]):
    """Base API response model with consistent structure and proper typing."""

    message_code: MessageCode
    message: str
    data: T | None = None

    @classmethod
    def success(
        cls,
        message_code: MessageCode = MessageCode.SUCCESS,
        message: str | None = None,
        data: T | None = None,
    ) -> "APIResponse[T]":
        """Create a success response."""
        return cls(
            message_code=message_code,
            message=message or DEFAULT_MESSAGES.get(message_code, "Success"),
            data=data,
        )


def get_default_message(message_code: MessageCode) -> str:
    """Get default message for a message code."""
    return DEFAULT_MESSAGES.get(message_code, "Operation completed")


def build_pagination(total: int, page: int, page_size: int, returned: int) -> PaginationInfo:
    """Pagination block for a page-numbered listing."""
    return PaginationInfo(
        total=total,
        page=page,
        page_size=page_size,
        has_more=(page - 1) * page_size + returned < total,
    )
