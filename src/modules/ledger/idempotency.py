"""Cached outcomes of requests that already took effect."""

from typing import Any

from src.core.base import BaseService
from src.database.models import IdempotencyRecord, IdempotencyScope


def service_usage_key(user_id: str, idempotency_key: str) -> str:
    return f"{IdempotencyScope.SERVICE_USAGE.value}:{user_id}:{idempotency_key}"


def payment_key(order_id: str) -> str:
    return f"{IdempotencyScope.PAYMENT.value}:{order_id}"


class IdempotencyStore(BaseService):
    """Reads and stages idempotency records on the caller's session.

    Records are staged, never committed here, so an outcome becomes visible
    in the same commit as the ledger mutation it describes.
    """

    async def get(self, key: str) -> IdempotencyRecord | None:
        return await self.db.get(IdempotencyRecord, key, populate_existing=True)

    def stage(
        self,
        key: str,
        scope: IdempotencyScope,
        user_id: str,
        response: dict[str, Any],
    ) -> IdempotencyRecord:
        record = IdempotencyRecord(
            key=key, scope=scope, user_id=user_id, response=response
        )
        self.db.add(record)
        return record
