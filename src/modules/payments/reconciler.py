"""Exactly-once reconciliation of payment confirmations into credit grants."""

import secrets
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.core.exceptions.base import LedgerException
from src.api.core.exceptions.errors import (
    AmountMismatch,
    ExternalCollaboratorFailure,
    InvalidPackage,
    OrderStateConflict,
    PaymentRejected,
    UnknownOrder,
)
from src.api.core.messages import MessageCode
from src.core.base import BaseService
from src.database.models import (
    IdempotencyScope,
    OrderStatus,
    PendingOrder,
    TransactionType,
)
from src.modules.ledger.idempotency import IdempotencyStore, payment_key
from src.modules.ledger.service import CreditLedgerService
from src.modules.payments.constants import (
    CREDIT_PACKAGES,
    GATEWAY_ALREADY_PROCESSED,
    GATEWAY_FAILED_STATUSES,
    GATEWAY_STATUS_DONE,
    ORDER_ID_PREFIX,
    CreditPackage,
)
from src.modules.payments.gateway import PaymentGatewayClient, PaymentGatewayError


@dataclass(frozen=True)
class ConfirmOutcome:
    order_id: str
    credits_granted: int
    balance: int
    transaction_id: str
    replayed: bool = False

    def to_record(self) -> dict[str, Any]:
        record = asdict(self)
        record.pop("replayed")
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "ConfirmOutcome":
        return cls(**record, replayed=True)


def generate_order_id(user_id: str) -> str:
    """``ORDER_{user prefix}_{epoch ms}_{random}``, unique across users."""
    return f"{ORDER_ID_PREFIX}_{user_id[:8]}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class PaymentReconciler(BaseService):
    """Turns gateway payment confirmations into exactly one credit grant.

    The order transition and the ``charge`` transaction are written in one
    ledger unit, so a duplicate confirmation (client redirect and webhook
    racing, or a retried callback) either sees the confirmed order and
    replays the stored outcome or loses the version check and retries into
    that same replay.
    """

    def __init__(
        self, db: AsyncSession, gateway: PaymentGatewayClient | None = None
    ):
        super().__init__(db)
        self.ledger = CreditLedgerService(db)
        self.idempotency = IdempotencyStore(db)
        self.gateway = gateway

    def list_packages(self) -> list[CreditPackage]:
        return list(CREDIT_PACKAGES.values())

    async def prepare_order(self, user_id: str, package_id: str) -> PendingOrder:
        package = CREDIT_PACKAGES.get(package_id)
        if package is None:
            raise InvalidPackage(package_id)
        await self.ledger.get_account(user_id)

        order_id = generate_order_id(user_id)

        async def create() -> PendingOrder:
            order = PendingOrder(
                order_id=order_id,
                user_id=user_id,
                package_id=package.package_id,
                order_name=package.name,
                expected_amount=package.price,
                credits=package.credits,
                status=OrderStatus.PREPARED,
            )
            self.db.add(order)
            await self.db.flush()
            return order

        order = await self.ledger.atomic(create)
        self.logger.info(
            "Payment order prepared",
            user_id=user_id,
            order_id=order_id,
            package_id=package_id,
            amount=package.price,
        )
        return order

    async def confirm_order(
        self,
        order_id: str,
        gateway_payment_id: str,
        amount: int,
        verify_with_gateway: bool = True,
        payment_method: str | None = None,
    ) -> ConfirmOutcome:
        """Grant the order's credits once the gateway approved the payment.

        ``verify_with_gateway=False`` is for callers that already hold a
        gateway-signed approval, such as the webhook.
        """
        order = await self._load_order(order_id)

        if order.status == OrderStatus.CONFIRMED:
            if amount != order.expected_amount:
                raise AmountMismatch(order_id, order.expected_amount, amount)
            return await self._replay(order_id)

        if amount != order.expected_amount:
            self.logger.warning(
                "Payment amount mismatch",
                order_id=order_id,
                expected=order.expected_amount,
                received=amount,
            )
            if order.status == OrderStatus.PREPARED:
                await self.fail_order(order_id, "amount mismatch")
            raise AmountMismatch(order_id, order.expected_amount, amount)

        if order.status == OrderStatus.FAILED:
            raise OrderStateConflict(MessageCode.ORDER_ALREADY_FAILED, order_id)

        actual_amount = amount
        if verify_with_gateway and self.gateway is not None:
            try:
                payment = await self.gateway.confirm_payment(
                    gateway_payment_id, order_id, amount
                )
            except PaymentGatewayError as e:
                # A concurrent confirmation may already have been approved
                order = await self._load_order(order_id)
                if order.status == OrderStatus.CONFIRMED:
                    return await self._replay(order_id)
                if e.code == GATEWAY_ALREADY_PROCESSED:
                    # Captured by an earlier attempt whose grant never committed
                    self.logger.error(
                        "Payment captured but credits not granted",
                        order_id=order_id,
                        gateway_payment_id=gateway_payment_id,
                        amount=amount,
                        requires_reconciliation=True,
                    )
                raise ExternalCollaboratorFailure(
                    {"order_id": order_id, "reason": str(e), "gateway_code": e.code}
                ) from e

            if payment.status != GATEWAY_STATUS_DONE:
                await self.fail_order(order_id, f"gateway status {payment.status}")
                raise PaymentRejected(order_id, payment.status)
            payment_method = payment.method or payment_method
            actual_amount = payment.total_amount or amount

        try:
            outcome = await self.ledger.atomic(
                lambda: self._grant(
                    order_id, gateway_payment_id, payment_method, actual_amount
                )
            )
        except IntegrityError:
            order = await self._load_order(order_id)
            if order.status == OrderStatus.CONFIRMED:
                return await self._replay(order_id)
            raise
        except LedgerException as e:
            if verify_with_gateway and self.gateway is not None:
                self.logger.error(
                    "Gateway approved payment but the credit grant failed",
                    order_id=order_id,
                    gateway_payment_id=gateway_payment_id,
                    error=e.message_code.value,
                    requires_reconciliation=True,
                )
            raise

        if not outcome.replayed:
            self.logger.info(
                "Payment order confirmed",
                order_id=order_id,
                credits=outcome.credits_granted,
                balance=outcome.balance,
            )
        return outcome

    async def fail_order(self, order_id: str, reason: str) -> PendingOrder:
        """Move a prepared order to ``failed``. Never touches the ledger."""

        async def fail() -> PendingOrder:
            order = await self._load_order(order_id)
            if order.status == OrderStatus.CONFIRMED:
                raise OrderStateConflict(MessageCode.ORDER_ALREADY_CONFIRMED, order_id)
            if order.status == OrderStatus.PREPARED:
                order.status = OrderStatus.FAILED
                order.failure_reason = reason[:500]
                order.updated_at = datetime.now(timezone.utc)
                await self.db.flush()
                self.logger.info("Payment order failed", order_id=order_id, reason=reason)
            return order

        return await self.ledger.atomic(fail)

    async def apply_gateway_status(
        self,
        order_id: str,
        status: str,
        gateway_payment_id: str,
        amount: int,
        payment_method: str | None = None,
    ) -> ConfirmOutcome | PendingOrder | None:
        """Apply a gateway-pushed payment status. Unhandled statuses are ignored."""
        if status == GATEWAY_STATUS_DONE:
            return await self.confirm_order(
                order_id,
                gateway_payment_id,
                amount,
                verify_with_gateway=False,
                payment_method=payment_method,
            )
        if status in GATEWAY_FAILED_STATUSES:
            return await self.fail_order(order_id, f"gateway status {status}")

        self.logger.info(
            "Ignoring gateway status", order_id=order_id, gateway_status=status
        )
        return None

    async def get_order(self, order_id: str) -> PendingOrder:
        return await self._load_order(order_id)

    async def list_orders(
        self, user_id: str, page: int = 1, page_size: int = 20
    ) -> tuple[list[PendingOrder], int]:
        total_stmt = (
            select(func.count())
            .select_from(PendingOrder)
            .where(PendingOrder.user_id == user_id)
        )
        total = (await self.db.execute(total_stmt)).scalar_one()

        stmt = (
            select(PendingOrder)
            .where(PendingOrder.user_id == user_id)
            .order_by(PendingOrder.created_at.desc(), PendingOrder.order_id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def _grant(
        self,
        order_id: str,
        gateway_payment_id: str,
        payment_method: str | None,
        actual_amount: int,
    ) -> ConfirmOutcome:
        order = await self._load_order(order_id)
        if order.status == OrderStatus.CONFIRMED:
            return await self._replay(order_id)
        if order.status == OrderStatus.FAILED:
            raise OrderStateConflict(MessageCode.ORDER_ALREADY_FAILED, order_id)

        order.status = OrderStatus.CONFIRMED
        order.gateway_payment_id = gateway_payment_id
        order.payment_method = payment_method
        order.updated_at = datetime.now(timezone.utc)

        entry = await self.ledger.stage_credit(
            order.user_id,
            order.credits,
            TransactionType.CHARGE,
            {
                "idempotency_key": f"order:{order_id}",
                "order_id": order_id,
                "payment_method": payment_method,
                "actual_amount": actual_amount,
            },
        )
        outcome = ConfirmOutcome(
            order_id=order_id,
            credits_granted=order.credits,
            balance=entry.new_balance,
            transaction_id=str(entry.transaction_id),
        )
        self.idempotency.stage(
            payment_key(order_id),
            IdempotencyScope.PAYMENT,
            order.user_id,
            outcome.to_record(),
        )
        await self.db.flush()
        return outcome

    async def _replay(self, order_id: str) -> ConfirmOutcome:
        record = await self.idempotency.get(payment_key(order_id))
        if record is None:
            # Confirmed orders always carry a record written in the same commit
            raise UnknownOrder(order_id)
        self.logger.info("Replaying payment confirmation", order_id=order_id)
        return ConfirmOutcome.from_record(record.response)

    async def _load_order(self, order_id: str) -> PendingOrder:
        stmt = (
            select(PendingOrder)
            .where(PendingOrder.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        order = (await self.db.execute(stmt)).scalar_one_or_none()
        if order is None:
            raise UnknownOrder(order_id)
        return order
