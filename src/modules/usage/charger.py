"""Charging paid AI services: reserve, invoke, then commit or release."""

import asyncio
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.core.exceptions.base import LedgerException
from src.api.core.exceptions.errors import (
    ExternalCollaboratorFailure,
    RequestInProgress,
    ServicePriceMismatch,
    UnknownService,
)
from src.core.base import BaseService
from src.database.models import (
    IdempotencyScope,
    Reservation,
    ReservationState,
    TransactionType,
)
from src.modules.ledger.idempotency import IdempotencyStore, service_usage_key
from src.modules.ledger.service import CreditLedgerService, LedgerEntry
from src.modules.usage.constants import (
    CANCELLED_ERROR,
    SERVICE_CREDIT_COSTS,
    TIMEOUT_ERROR,
)
from src.utils.settings.ledger import ledger_settings

SUCCEEDED = "succeeded"
FAILED = "failed"


class ServiceInvoker(Protocol):
    def invoke(
        self, service_id: str, payload: dict[str, Any]
    ) -> Awaitable[dict[str, Any]]: ...


@dataclass(frozen=True)
class ChargeOutcome:
    service_id: str
    idempotency_key: str
    credits_charged: int
    balance: int
    transaction_id: str
    result: dict[str, Any] = field(default_factory=dict)
    replayed: bool = False

    def to_record(self) -> dict[str, Any]:
        record = asdict(self)
        record.pop("replayed")
        record["status"] = SUCCEEDED
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "ChargeOutcome":
        return cls(
            service_id=record["service_id"],
            idempotency_key=record["idempotency_key"],
            credits_charged=record["credits_charged"],
            balance=record["balance"],
            transaction_id=record["transaction_id"],
            result=record.get("result") or {},
            replayed=True,
        )


def resolve_service_cost(service_id: str, cost: int | None = None) -> int:
    """Explicit cost wins, otherwise the catalog price of ``service_id``."""
    if cost is not None:
        return cost
    if service_id not in SERVICE_CREDIT_COSTS:
        raise UnknownService(service_id)
    return SERVICE_CREDIT_COSTS[service_id]


def resolve_request_cost(service_id: str, cost: int | None = None) -> int:
    """Price a client-submitted charge.

    Catalog services are always charged their catalog price; a request naming
    a different cost is rejected.
    """
    price = SERVICE_CREDIT_COSTS.get(service_id)
    if price is not None and cost is not None and cost != price:
        raise ServicePriceMismatch(service_id, price, cost)
    return resolve_service_cost(service_id, cost)


class ServiceUsageCharger(BaseService):
    """Charges a paid service call exactly once per idempotency key.

    Credits are debited before the inference call and refunded when it fails,
    times out or is cancelled, so a user is never left charged without a
    result. The debit and its refund carry the same idempotency key.
    """

    def __init__(
        self,
        db: AsyncSession,
        inference: ServiceInvoker | None = None,
        timeout: float | None = None,
    ):
        super().__init__(db)
        self.ledger = CreditLedgerService(db)
        self.idempotency = IdempotencyStore(db)
        self.inference = inference
        self.timeout = timeout or ledger_settings.INFERENCE_TIMEOUT_SECONDS

    async def charge_service(
        self,
        user_id: str,
        service_id: str,
        idempotency_key: str,
        cost: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> ChargeOutcome:
        amount = resolve_service_cost(service_id, cost)

        replay = await self._replay(user_id, idempotency_key)
        if replay is not None:
            return replay

        try:
            reservation_id, debit = await self.ledger.atomic(
                lambda: self._reserve(user_id, service_id, idempotency_key, amount)
            )
        except IntegrityError:
            # Same key reserved concurrently
            replay = await self._replay(user_id, idempotency_key)
            if replay is not None:
                return replay
            raise RequestInProgress(idempotency_key)

        self.logger.info(
            "Service credits reserved",
            user_id=user_id,
            service_id=service_id,
            amount=amount,
            reservation_id=str(reservation_id),
            balance=debit.new_balance,
        )

        try:
            result = await asyncio.wait_for(
                self.inference.invoke(service_id, payload or {}),
                timeout=self.timeout,
            )
        except asyncio.CancelledError:
            await asyncio.shield(
                self._release_after_failure(reservation_id, CANCELLED_ERROR)
            )
            raise
        except Exception as e:
            error = TIMEOUT_ERROR if isinstance(e, asyncio.TimeoutError) else str(e)
            self.logger.warning(
                "Service invocation failed",
                user_id=user_id,
                service_id=service_id,
                error=error,
            )
            await self._release_after_failure(reservation_id, error)
            raise ExternalCollaboratorFailure(
                {"service_id": service_id, "refunded": amount, "reason": error}
            ) from e

        return await self.ledger.atomic(lambda: self._commit(reservation_id, result))

    async def release_reservation(
        self, reservation_id: UUID, error: str
    ) -> LedgerEntry | None:
        """Refund a reservation that did not produce a result.

        Returns None when the reservation was already committed or released.
        """

        async def release() -> LedgerEntry | None:
            reservation = await self._load_reservation(reservation_id)
            if reservation.state in (
                ReservationState.COMMITTED,
                ReservationState.RELEASED,
            ):
                return None

            refund = await self.ledger.stage_credit(
                reservation.user_id,
                reservation.amount,
                TransactionType.REFUND,
                {
                    "idempotency_key": reservation.idempotency_key,
                    "service_id": reservation.service_id,
                    "reason": error,
                },
            )
            reservation.state = ReservationState.RELEASED
            reservation.refund_transaction_id = refund.transaction_id
            reservation.last_error = error
            reservation.updated_at = datetime.now(timezone.utc)
            self.idempotency.stage(
                service_usage_key(reservation.user_id, reservation.idempotency_key),
                IdempotencyScope.SERVICE_USAGE,
                reservation.user_id,
                {
                    "status": FAILED,
                    "service_id": reservation.service_id,
                    "refunded": reservation.amount,
                    "reason": error,
                },
            )
            await self.db.flush()
            return refund

        refund = await self.ledger.atomic(release)
        if refund is not None:
            self.logger.info(
                "Service reservation released",
                reservation_id=str(reservation_id),
                refunded=refund.credit_amount,
                balance=refund.new_balance,
            )
        return refund

    async def mark_refund_pending(self, reservation_id: UUID, error: str) -> int:
        """Record a failed refund attempt so the refund worker picks it up.

        Returns the number of failed attempts so far.
        """

        async def mark() -> int:
            reservation = await self._load_reservation(reservation_id)
            if reservation.state in (
                ReservationState.COMMITTED,
                ReservationState.RELEASED,
            ):
                return reservation.refund_attempts
            reservation.state = ReservationState.REFUND_PENDING
            reservation.refund_attempts += 1
            reservation.last_error = error
            reservation.updated_at = datetime.now(timezone.utc)
            await self.db.flush()
            return reservation.refund_attempts

        return await self.ledger.atomic(mark)

    async def _replay(
        self, user_id: str, idempotency_key: str
    ) -> ChargeOutcome | None:
        record = await self.idempotency.get(service_usage_key(user_id, idempotency_key))
        if record is not None:
            if record.response.get("status") == SUCCEEDED:
                self.logger.info(
                    "Replaying service charge",
                    user_id=user_id,
                    idempotency_key=idempotency_key,
                )
                return ChargeOutcome.from_record(record.response)
            raise ExternalCollaboratorFailure(
                {
                    "service_id": record.response.get("service_id"),
                    "refunded": record.response.get("refunded"),
                    "reason": record.response.get("reason"),
                    "replayed": True,
                }
            )

        stmt = (
            select(Reservation)
            .where(
                Reservation.user_id == user_id,
                Reservation.idempotency_key == idempotency_key,
            )
            .execution_options(populate_existing=True)
        )
        reservation = (await self.db.execute(stmt)).scalar_one_or_none()
        if reservation is None:
            return None
        if reservation.state == ReservationState.REFUND_PENDING:
            # Refund is owed and queued, the call itself failed
            raise ExternalCollaboratorFailure(
                {
                    "service_id": reservation.service_id,
                    "refund_pending": True,
                    "reason": reservation.last_error,
                    "replayed": True,
                }
            )
        raise RequestInProgress(idempotency_key)

    async def _reserve(
        self, user_id: str, service_id: str, idempotency_key: str, amount: int
    ) -> tuple[UUID, LedgerEntry]:
        reservation = Reservation(
            user_id=user_id,
            idempotency_key=idempotency_key,
            service_id=service_id,
            amount=amount,
            state=ReservationState.HELD,
        )
        self.db.add(reservation)
        debit = await self.ledger.stage_debit(
            user_id,
            amount,
            TransactionType.SERVICE_USAGE,
            {"idempotency_key": idempotency_key, "service_id": service_id},
        )
        reservation.debit_transaction_id = debit.transaction_id
        await self.db.flush()
        return reservation.id, debit

    async def _commit(
        self, reservation_id: UUID, result: dict[str, Any]
    ) -> ChargeOutcome:
        reservation = await self._load_reservation(reservation_id)
        if reservation.state != ReservationState.HELD:
            # Released by the refund worker while the call was running
            raise ExternalCollaboratorFailure(
                {
                    "service_id": reservation.service_id,
                    "reason": "reservation no longer held",
                    "state": str(reservation.state),
                }
            )

        reservation.state = ReservationState.COMMITTED
        reservation.updated_at = datetime.now(timezone.utc)
        balance = await self.ledger.get_balance(reservation.user_id)
        outcome = ChargeOutcome(
            service_id=reservation.service_id,
            idempotency_key=reservation.idempotency_key,
            credits_charged=reservation.amount,
            balance=balance,
            transaction_id=str(reservation.debit_transaction_id),
            result=result,
        )
        self.idempotency.stage(
            service_usage_key(reservation.user_id, reservation.idempotency_key),
            IdempotencyScope.SERVICE_USAGE,
            reservation.user_id,
            outcome.to_record(),
        )
        await self.db.flush()

        self.logger.info(
            "Service charge committed",
            user_id=reservation.user_id,
            service_id=reservation.service_id,
            amount=reservation.amount,
            balance=balance,
        )
        return outcome

    async def _release_after_failure(self, reservation_id: UUID, error: str) -> None:
        try:
            await self.release_reservation(reservation_id, error)
        except (LedgerException, IntegrityError) as e:
            self.logger.error(
                "Refund failed, reservation requires reconciliation",
                reservation_id=str(reservation_id),
                error=str(e),
                original_error=error,
                requires_reconciliation=True,
            )
            try:
                await self.mark_refund_pending(reservation_id, f"{error}; refund: {e}")
            except (LedgerException, IntegrityError) as mark_error:
                # Still held, the refund worker releases it once abandoned
                self.logger.error(
                    "Could not mark reservation refund pending",
                    reservation_id=str(reservation_id),
                    error=str(mark_error),
                    requires_reconciliation=True,
                )

    async def _load_reservation(self, reservation_id: UUID) -> Reservation:
        stmt = (
            select(Reservation)
            .where(Reservation.id == reservation_id)
            .execution_options(populate_existing=True)
        )
        return (await self.db.execute(stmt)).scalar_one()
