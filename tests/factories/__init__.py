"""Test factories for credit ledger models."""

from .base import AsyncSQLAlchemyModelFactory
from .accounts import AccountFactory
from .admin_activity import AdminActivityLogFactory
from .orders import PendingOrderFactory
from .reservations import ReservationFactory

__all__ = [
    "AsyncSQLAlchemyModelFactory",
    "AccountFactory",
    "AdminActivityLogFactory",
    "PendingOrderFactory",
    "ReservationFactory",
]
