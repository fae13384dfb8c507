"""Idempotency record model."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class IdempotencyScope(str, Enum):
    SERVICE_USAGE = "service_usage"
    PAYMENT = "payment"


class IdempotencyRecord(Base):
    """Outcome of a request that already took effect, returned on replay."""

    __tablename__ = "idempotency_records"

    key: Mapped[str] = mapped_column(String(300), primary_key=True)
    scope: Mapped[IdempotencyScope] = mapped_column(String(30), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    response: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
