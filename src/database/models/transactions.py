"""Ledger transaction model and related enums."""

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class TransactionType(str, Enum):
    CHARGE = "charge"
    DEDUCT = "deduct"
    SERVICE_USAGE = "service_usage"
    REFUND = "refund"
    ADMIN_CHARGE = "admin_charge"
    ADMIN_DEDUCT = "admin_deduct"


# Types that add to an account's lifetime credits
GRANT_TRANSACTION_TYPES = frozenset(
    {TransactionType.CHARGE, TransactionType.ADMIN_CHARGE}
)


class Transaction(Base):
    """Immutable record of one balance mutation."""

    __tablename__ = "transactions"
    __table_args__ = (
        # One debit and at most one refund per idempotency key, one charge per order
        UniqueConstraint("user_id", "idempotency_key", "type"),
        UniqueConstraint("user_id", "sequence"),
        Index("ix_transactions_user_created", "user_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("accounts.user_id"), nullable=False
    )
    # Position in the account's history, taken from the account version it produced
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[TransactionType] = mapped_column(String(32), nullable=False)
    credit_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    credit_balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    actual_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(200), nullable=True)
    order_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    service_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
