"""Administrator credit adjustments and their audit trail."""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.core.exceptions.base import LedgerException
from src.api.core.exceptions.errors import AccountNotFound, InsufficientCredits
from src.core.base import BaseService
from src.database.models import (
    AdminAction,
    AdminActivityLog,
    TransactionType,
)
from src.modules.ledger.service import CreditLedgerService, LedgerEntry

ACCOUNT_TARGET = "account"
STATUS_SUCCEEDED = "succeeded"
STATUS_FAILED = "failed"


@dataclass
class ActivityFilters:
    admin_id: str | None = None
    action: AdminAction | None = None
    target_type: str | None = None
    target_id: str | None = None
    since: datetime | None = None
    until: datetime | None = None


class AdminAdjustmentService(BaseService):
    """Manual credit grants and deductions by administrators.

    Each adjustment and its audit row are committed together. A rejected
    adjustment still leaves an audit row recording the attempt.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(db)
        self.ledger = CreditLedgerService(db)

    async def admin_charge(
        self,
        admin_id: str,
        user_id: str,
        amount: int,
        reason: str,
        ip_address: str | None = None,
    ) -> LedgerEntry:
        return await self._adjust(
            admin_id,
            user_id,
            amount,
            reason,
            ip_address,
            action=AdminAction.CREDIT_CHARGE,
            tx_type=TransactionType.ADMIN_CHARGE,
        )

    async def admin_deduct(
        self,
        admin_id: str,
        user_id: str,
        amount: int,
        reason: str,
        ip_address: str | None = None,
    ) -> LedgerEntry:
        return await self._adjust(
            admin_id,
            user_id,
            amount,
            reason,
            ip_address,
            action=AdminAction.CREDIT_DEDUCT,
            tx_type=TransactionType.ADMIN_DEDUCT,
        )

    async def list_activity(
        self,
        filters: ActivityFilters | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[AdminActivityLog], int]:
        filters = filters or ActivityFilters()
        conditions = []
        if filters.admin_id:
            conditions.append(AdminActivityLog.admin_id == filters.admin_id)
        if filters.action:
            conditions.append(AdminActivityLog.action == filters.action)
        if filters.target_type:
            conditions.append(AdminActivityLog.target_type == filters.target_type)
        if filters.target_id:
            conditions.append(AdminActivityLog.target_id == filters.target_id)
        if filters.since:
            conditions.append(AdminActivityLog.created_at >= filters.since)
        if filters.until:
            conditions.append(AdminActivityLog.created_at <= filters.until)

        total_stmt = select(func.count()).select_from(AdminActivityLog).where(*conditions)
        total = (await self.db.execute(total_stmt)).scalar_one()

        stmt = (
            select(AdminActivityLog)
            .where(*conditions)
            .order_by(AdminActivityLog.created_at.desc(), AdminActivityLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def _adjust(
        self,
        admin_id: str,
        user_id: str,
        amount: int,
        reason: str,
        ip_address: str | None,
        action: AdminAction,
        tx_type: TransactionType,
    ) -> LedgerEntry:
        stage = (
            self.ledger.stage_credit
            if tx_type == TransactionType.ADMIN_CHARGE
            else self.ledger.stage_debit
        )

        async def adjust() -> LedgerEntry:
            entry = await stage(user_id, amount, tx_type, {"reason": reason})
            self._stage_audit(
                admin_id,
                user_id,
                action,
                ip_address,
                {
                    "amount": amount,
                    "reason": reason,
                    "status": STATUS_SUCCEEDED,
                    "transaction_id": str(entry.transaction_id),
                    "balance_after": entry.new_balance,
                },
            )
            await self.db.flush()
            return entry

        try:
            entry = await self.ledger.atomic(adjust)
        except (InsufficientCredits, AccountNotFound) as e:
            await self._record_failure(admin_id, user_id, action, ip_address, amount, reason, e)
            raise

        self.logger.info(
            "Admin credit adjustment",
            admin_id=admin_id,
            user_id=user_id,
            action=action.value,
            amount=amount,
            balance_after=entry.new_balance,
        )
        return entry

    async def _record_failure(
        self,
        admin_id: str,
        user_id: str,
        action: AdminAction,
        ip_address: str | None,
        amount: int,
        reason: str,
        error: LedgerException,
    ) -> None:
        self.logger.warning(
            "Admin credit adjustment rejected",
            admin_id=admin_id,
            user_id=user_id,
            action=action.value,
            amount=amount,
            error=error.message_code.value,
        )

        async def audit() -> None:
            self._stage_audit(
                admin_id,
                user_id,
                action,
                ip_address,
                {
                    "amount": amount,
                    "reason": reason,
                    "status": STATUS_FAILED,
                    "error": error.message_code.value,
                    "error_details": error.details,
                },
            )
            await self.db.flush()

        await self.ledger.atomic(audit)

    def _stage_audit(
        self,
        admin_id: str,
        user_id: str,
        action: AdminAction,
        ip_address: str | None,
        details: dict,
    ) -> AdminActivityLog:
        entry = AdminActivityLog(
            admin_id=admin_id,
            action=action,
            target_type=ACCOUNT_TARGET,
            target_id=user_id,
            details=details,
            ip_address=ip_address,
        )
        self.db.add(entry)
        return entry
