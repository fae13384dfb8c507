"""Tests for account and credit balance endpoints."""

import pytest
from fastapi import status
from httpx import AsyncClient

from src.api.core.messages import MessageCode
from src.database.models import TransactionType
from src.modules.ledger.service import CreditLedgerService
from tests.utils.constants import TEST_USER_ID
from tests.utils.assertions import assert_error_response, assert_success_response


@pytest.mark.asyncio
async def test_open_account(client_factory):
    async with client_factory("fresh-user") as client:
        response = await client.post("/v1/accounts")
        again = await client.post("/v1/accounts")

    data = assert_success_response(response, MessageCode.ACCOUNT_CREATED)
    assert data["user_id"] == "fresh-user"
    assert data["balance"] == 0
    assert data["archived_at"] is None
    assert assert_success_response(again, MessageCode.ACCOUNT_CREATED)["user_id"] == (
        "fresh-user"
    )


@pytest.mark.asyncio
async def test_get_balance(authorized_client: AsyncClient, test_account):
    response = await authorized_client.get("/v1/credits/balance")

    assert_success_response(
        response,
        data_assertions={
            "user_id": TEST_USER_ID,
            "balance": 100,
            "lifetime_credits": 100,
        },
    )


@pytest.mark.asyncio
async def test_balance_without_account(authorized_client: AsyncClient):
    response = await authorized_client.get("/v1/credits/balance")

    details = assert_error_response(
        response, MessageCode.ACCOUNT_NOT_FOUND, status.HTTP_404_NOT_FOUND
    )
    assert details["user_id"] == TEST_USER_ID


@pytest.mark.asyncio
async def test_transaction_history(
    authorized_client: AsyncClient, test_account, session_factory
):
    async with session_factory() as session:
        ledger = CreditLedgerService(session)
        await ledger.debit(
            TEST_USER_ID,
            20,
            TransactionType.SERVICE_USAGE,
            {"idempotency_key": "req-1", "service_id": "tarot"},
        )
        await ledger.credit(
            TEST_USER_ID,
            20,
            TransactionType.REFUND,
            {"idempotency_key": "req-1", "service_id": "tarot"},
        )

    response = await authorized_client.get(
        "/v1/credits/transactions", params={"page": 1, "page_size": 2}
    )

    data = assert_success_response(response)
    assert data["pagination"] == {
        "total": 3,
        "page": 1,
        "page_size": 2,
        "has_more": True,
    }
    refund, usage = data["items"]
    assert refund["type"] == "refund"
    assert refund["credit_amount"] == 20
    assert refund["credit_balance_after"] == 100
    assert usage["type"] == "service_usage"
    assert usage["credit_amount"] == -20
    assert usage["service_id"] == "tarot"
    assert usage["idempotency_key"] == "req-1"


@pytest.mark.asyncio
async def test_transaction_history_rejects_oversized_pages(
    authorized_client: AsyncClient, test_account
):
    response = await authorized_client.get(
        "/v1/credits/transactions", params={"page_size": 1000}
    )

    assert_error_response(
        response, MessageCode.INVALID_INPUT, status.HTTP_422_UNPROCESSABLE_ENTITY
    )
