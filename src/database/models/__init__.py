"""Database models for the credit ledger."""

from .accounts import Account
from .admin_activity import AdminAction, AdminActivityLog
from .base import Base
from .idempotency import IdempotencyRecord, IdempotencyScope
from .pending_orders import OrderStatus, PendingOrder
from .reservations import Reservation, ReservationState
from .transactions import GRANT_TRANSACTION_TYPES, Transaction, TransactionType

# Export all models and enums
__all__ = [
    # Base
    "Base",
    # Enums
    "AdminAction",
    "IdempotencyScope",
    "OrderStatus",
    "ReservationState",
    "TransactionType",
    "GRANT_TRANSACTION_TYPES",
    # Models
    "Account",
    "AdminActivityLog",
    "IdempotencyRecord",
    "PendingOrder",
    "Reservation",
    "Transaction",
]
