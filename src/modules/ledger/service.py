"""Credit ledger: the only writer of account balances and transactions."""

import asyncio
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from src.api.core.exceptions.base import LedgerException
from src.api.core.exceptions.errors import (
    AccountArchived,
    AccountNotFound,
    InsufficientCredits,
    InvalidAmount,
    LedgerConflict,
    StorageFailure,
)
from src.core.base import BaseService
from src.database.models import (
    GRANT_TRANSACTION_TYPES,
    Account,
    Transaction,
    TransactionType,
)
from src.utils.settings.ledger import ledger_settings

T = TypeVar("T")

# Metadata keys copied onto transaction columns
METADATA_COLUMNS = (
    "idempotency_key",
    "order_id",
    "service_id",
    "payment_method",
    "actual_amount",
    "reason",
)

SIGNUP_CREDITS_REASON = "Signup credits"


@dataclass(frozen=True)
class LedgerEntry:
    """Result of a single balance mutation."""

    user_id: str
    transaction_id: UUID
    transaction_type: TransactionType
    credit_amount: int
    new_balance: int


class CreditLedgerService(BaseService):
    """Atomic credit and debit operations over per-user accounts.

    Every mutation reads the account, validates, writes the new balance and
    appends one transaction row inside a single database transaction. The
    account's ``version`` column makes concurrent writers on the same account
    fail at flush time; ``atomic`` then rolls back and replays the unit.
    """

    def __init__(self, db: AsyncSession, max_retries: int | None = None):
        super().__init__(db)
        self.max_retries = max_retries or ledger_settings.LEDGER_MAX_RETRIES

    async def atomic(self, mutation: Callable[[], Awaitable[T]]) -> T:
        """Run ``mutation`` and commit it as one all-or-nothing unit.

        ``mutation`` must rebuild everything it stages on each call since a
        version conflict discards the session state and runs it again.
        IntegrityError is re-raised untouched so callers can resolve
        unique-key races themselves.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await mutation()
                await self.db.commit()
                return result
            except StaleDataError as e:
                await self.db.rollback()
                if attempt >= self.max_retries:
                    self.logger.warning(
                        "Ledger version conflict, giving up", attempts=attempt
                    )
                    raise LedgerConflict({"attempts": attempt}) from e
                self.logger.debug("Ledger version conflict, retrying", attempt=attempt)
                await asyncio.sleep(random.uniform(0, 0.01 * attempt))
            except (LedgerException, IntegrityError):
                await self.db.rollback()
                raise
            except SQLAlchemyError as e:
                await self.db.rollback()
                self.logger.error(
                    "Ledger storage failure",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise StorageFailure({"error_type": type(e).__name__}) from e
            except Exception:
                await self.db.rollback()
                raise

    async def get_account(self, user_id: str) -> Account:
        return await self._load_account(user_id)

    async def get_balance(self, user_id: str) -> int:
        account = await self.get_account(user_id)
        return account.balance

    async def open_account(self, user_id: str, initial_credits: int = 0) -> Account:
        """Create the account for a newly registered user.

        Opening an existing account returns it unchanged. Initial credits are
        written as a ``charge`` so the balance stays equal to the sum of the
        account's transactions.
        """
        existing = await self.db.get(Account, user_id)
        if existing is not None:
            return existing

        async def create() -> Account:
            account = Account(user_id=user_id, balance=0, lifetime_credits=0)
            self.db.add(account)
            await self.db.flush()
            if initial_credits > 0:
                await self.stage_credit(
                    user_id,
                    initial_credits,
                    TransactionType.CHARGE,
                    {"reason": SIGNUP_CREDITS_REASON},
                )
            return account

        try:
            account = await self.atomic(create)
        except IntegrityError:
            # Opened concurrently by another request
            return await self.get_account(user_id)

        self.logger.info(
            "Credit account opened", user_id=user_id, initial_credits=initial_credits
        )
        return account

    async def archive_account(self, user_id: str) -> Account:
        async def archive() -> Account:
            account = await self._load_account(user_id)
            if account.archived_at is None:
                now = datetime.now(timezone.utc)
                account.archived_at = now
                account.updated_at = now
                await self.db.flush()
            return account

        account = await self.atomic(archive)
        self.logger.info("Credit account archived", user_id=user_id)
        return account

    async def credit(
        self,
        user_id: str,
        amount: int,
        tx_type: TransactionType,
        metadata: dict[str, Any] | None = None,
    ) -> LedgerEntry:
        return await self.atomic(
            lambda: self.stage_credit(user_id, amount, tx_type, metadata)
        )

    async def debit(
        self,
        user_id: str,
        amount: int,
        tx_type: TransactionType,
        metadata: dict[str, Any] | None = None,
    ) -> LedgerEntry:
        return await self.atomic(
            lambda: self.stage_debit(user_id, amount, tx_type, metadata)
        )

    async def stage_credit(
        self,
        user_id: str,
        amount: int,
        tx_type: TransactionType,
        metadata: dict[str, Any] | None = None,
    ) -> LedgerEntry:
        """Stage a credit in the current unit without committing. Use inside ``atomic``."""
        return await self._stage(user_id, amount, tx_type, metadata, sign=1)

    async def stage_debit(
        self,
        user_id: str,
        amount: int,
        tx_type: TransactionType,
        metadata: dict[str, Any] | None = None,
    ) -> LedgerEntry:
        """Stage a debit in the current unit without committing. Use inside ``atomic``."""
        return await self._stage(user_id, amount, tx_type, metadata, sign=-1)

    async def list_transactions(
        self, user_id: str, page: int = 1, page_size: int = 20
    ) -> tuple[list[Transaction], int]:
        """Newest first. Raises AccountNotFound for unknown users."""
        await self.get_account(user_id)

        total_stmt = (
            select(func.count())
            .select_from(Transaction)
            .where(Transaction.user_id == user_id)
        )
        total = (await self.db.execute(total_stmt)).scalar_one()

        stmt = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.sequence.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def verify_consistency(self, user_id: str) -> bool:
        """Recompute the running sum of the account's transactions.

        True when every ``credit_balance_after`` matches the running sum at
        its position, the sum never went negative and it equals the stored
        balance.
        """
        account = await self.get_account(user_id)
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .order_by(Transaction.sequence.asc())
        )
        transactions = (await self.db.execute(stmt)).scalars().all()

        running = 0
        for transaction in transactions:
            running += transaction.credit_amount
            if running < 0 or running != transaction.credit_balance_after:
                self.logger.error(
                    "Ledger running sum mismatch",
                    user_id=user_id,
                    transaction_id=str(transaction.id),
                    expected=running,
                    recorded=transaction.credit_balance_after,
                )
                return False

        if running != account.balance:
            self.logger.error(
                "Ledger balance mismatch",
                user_id=user_id,
                running_sum=running,
                balance=account.balance,
            )
            return False
        return True

    async def _load_account(self, user_id: str) -> Account:
        stmt = (
            select(Account)
            .where(Account.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        account = (await self.db.execute(stmt)).scalar_one_or_none()
        if account is None:
            raise AccountNotFound(user_id)
        return account

    async def _stage(
        self,
        user_id: str,
        amount: int,
        tx_type: TransactionType,
        metadata: dict[str, Any] | None,
        sign: int,
    ) -> LedgerEntry:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount(amount)

        account = await self._load_account(user_id)
        if account.is_archived:
            raise AccountArchived(user_id)
        if sign < 0 and account.balance < amount:
            raise InsufficientCredits(required=amount, available=account.balance)

        delta = sign * amount
        account.balance += delta
        if tx_type in GRANT_TRANSACTION_TYPES:
            account.lifetime_credits += amount
        account.updated_at = datetime.now(timezone.utc)

        metadata = metadata or {}
        transaction = Transaction(
            user_id=user_id,
            sequence=account.version + 1,
            type=tx_type,
            credit_amount=delta,
            credit_balance_after=account.balance,
            **{key: metadata.get(key) for key in METADATA_COLUMNS},
        )
        self.db.add(transaction)
        await self.db.flush()

        self.logger.info(
            "Ledger entry staged",
            user_id=user_id,
            transaction_type=str(tx_type.value),
            credit_amount=delta,
            balance_after=account.balance,
        )
        return LedgerEntry(
            user_id=user_id,
            transaction_id=transaction.id,
            transaction_type=tx_type,
            credit_amount=delta,
            new_balance=account.balance,
        )
