"""Background retry of refunds owed for failed or abandoned service calls."""

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.core.exceptions.base import LedgerException
from src.database.models import Reservation, ReservationState
from src.modules.usage.charger import ServiceUsageCharger
from src.modules.usage.constants import ABANDONED_ERROR
from src.utils.logger import get_logger
from src.utils.settings.ledger import LedgerSettings, ledger_settings

logger = get_logger(__name__)


class RefundRetryWorker:
    """Releases reservations whose refund is still owed.

    Picks up ``refund_pending`` reservations and ``held`` ones that outlived
    the inference timeout plus a grace period, which means the process
    charging them died. Each reservation is released in its own session; a
    release is a no-op once the reservation is no longer held. A reservation
    whose refund failed ``REFUND_MAX_ATTEMPTS`` times is no longer retried.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: LedgerSettings = ledger_settings,
    ):
        self.session_factory = session_factory
        self.settings = settings

    async def run_once(self) -> int:
        """Retry one batch. Returns how many reservations were refunded."""
        reservation_ids = await self._due_reservations()
        released = 0
        for reservation_id in reservation_ids:
            if await self._retry(reservation_id):
                released += 1

        if reservation_ids:
            logger.info(
                "Refund retry batch finished",
                due=len(reservation_ids),
                released=released,
            )
        return released

    async def run_forever(self) -> None:
        logger.info(
            "Refund retry worker started",
            interval_seconds=self.settings.REFUND_RETRY_INTERVAL_SECONDS,
        )
        while True:
            try:
                await self.run_once()
            except SQLAlchemyError as e:
                logger.error("Refund retry batch failed", error=str(e))
            await asyncio.sleep(self.settings.REFUND_RETRY_INTERVAL_SECONDS)

    async def _due_reservations(self) -> list[UUID]:
        abandoned_before = datetime.now(timezone.utc) - timedelta(
            seconds=self.settings.INFERENCE_TIMEOUT_SECONDS
            + self.settings.RESERVATION_GRACE_SECONDS
        )
        stmt = (
            select(Reservation.id)
            .where(
                or_(
                    and_(
                        Reservation.state == ReservationState.REFUND_PENDING,
                        Reservation.refund_attempts
                        < self.settings.REFUND_MAX_ATTEMPTS,
                    ),
                    and_(
                        Reservation.state == ReservationState.HELD,
                        Reservation.created_at < abandoned_before,
                    ),
                )
            )
            .order_by(Reservation.created_at.asc())
            .limit(self.settings.REFUND_RETRY_BATCH_SIZE)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def _retry(self, reservation_id: UUID) -> bool:
        async with self.session_factory() as session:
            charger = ServiceUsageCharger(session)
            try:
                refund = await charger.release_reservation(
                    reservation_id, ABANDONED_ERROR
                )
            except (LedgerException, IntegrityError) as e:
                logger.error(
                    "Refund retry failed",
                    reservation_id=str(reservation_id),
                    error=str(e),
                    requires_reconciliation=True,
                )
                try:
                    attempts = await charger.mark_refund_pending(reservation_id, str(e))
                except LedgerException as mark_error:
                    logger.error(
                        "Could not record refund attempt",
                        reservation_id=str(reservation_id),
                        error=str(mark_error),
                    )
                    return False
                if attempts >= self.settings.REFUND_MAX_ATTEMPTS:
                    logger.error(
                        "Refund retries exhausted",
                        reservation_id=str(reservation_id),
                        attempts=attempts,
                        requires_reconciliation=True,
                    )
                return False
            return refund is not None
