"""Credit account model."""

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Account(Base):
    """Spendable credit balance of one user.

    Only the ledger service writes ``balance``; every write bumps ``version``
    so concurrent writers detect each other and retry.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="balance_non_negative"),
        CheckConstraint("lifetime_credits >= 0", name="lifetime_non_negative"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64), primary_key=True, comment="Identity provider user id"
    )
    balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    archived_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None
