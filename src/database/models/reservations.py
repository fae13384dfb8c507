"""Service usage reservation model."""

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ReservationState(str, Enum):
    HELD = "held"
    COMMITTED = "committed"
    RELEASED = "released"
    # Refund could not be written, the refund worker retries it
    REFUND_PENDING = "refund_pending"


class Reservation(Base):
    """Credits debited for a paid service call whose outcome is not final yet."""

    __tablename__ = "reservations"
    __table_args__ = (UniqueConstraint("user_id", "idempotency_key"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(200), nullable=False)
    service_id: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    state: Mapped[ReservationState] = mapped_column(
        String(20), nullable=False, default=ReservationState.HELD, index=True
    )
    debit_transaction_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, nullable=True
    )
    refund_transaction_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, nullable=True
    )
    refund_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __mapper_args__ = {"version_id_col": version}
