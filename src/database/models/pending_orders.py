"""Pending payment order model."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class OrderStatus(str, Enum):
    PREPARED = "prepared"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class PendingOrder(Base):
    __tablename__ = "pending_orders"

    order_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("accounts.user_id"), nullable=False, index=True
    )
    package_id: Mapped[str] = mapped_column(String(50), nullable=False)
    order_name: Mapped[str] = mapped_column(String(100), nullable=False)
    expected_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    credits: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        String(20), nullable=False, default=OrderStatus.PREPARED
    )
    gateway_payment_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __mapper_args__ = {"version_id_col": version}
