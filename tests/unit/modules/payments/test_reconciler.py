"""Tests for PaymentReconciler order lifecycle and exactly-once grants."""

import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from structlog.testing import capture_logs

from src.api.core.exceptions.errors import (
    AccountNotFound,
    AmountMismatch,
    ExternalCollaboratorFailure,
    InvalidPackage,
    OrderStateConflict,
    PaymentRejected,
    StorageFailure,
    UnknownOrder,
)
from src.api.core.messages import MessageCode
from src.database.models import OrderStatus, Transaction, TransactionType
from src.modules.ledger.service import CreditLedgerService
from src.modules.payments.constants import (
    CREDIT_PACKAGES,
    GATEWAY_ALREADY_PROCESSED,
)
from src.modules.payments.gateway import PaymentGatewayError
from src.modules.payments.reconciler import PaymentReconciler, generate_order_id
from tests.utils.assertions import assert_ledger_exception
from tests.utils.fakes import FakePaymentGateway


async def _charges(session, user_id: str) -> list[Transaction]:
    result = await session.execute(
        select(Transaction).where(
            Transaction.user_id == user_id,
            Transaction.type == TransactionType.CHARGE,
            Transaction.order_id.is_not(None),
        )
    )
    return list(result.scalars().all())


def test_order_ids_are_unique_and_prefixed():
    first = generate_order_id("0123456789abcdef")
    second = generate_order_id("0123456789abcdef")

    assert first.startswith("ORDER_01234567_")
    assert first != second


def test_list_packages():
    reconciler = PaymentReconciler(db=None)

    packages = {package.package_id: package for package in reconciler.list_packages()}

    assert set(packages) == {"basic", "standard", "premium", "enterprise"}
    assert packages["standard"].credits == 5000
    assert packages["standard"].price == 10000


@pytest.mark.asyncio
async def test_prepare_order(db_session, create_account):
    await create_account("alice")
    reconciler = PaymentReconciler(db_session, gateway=FakePaymentGateway())

    order = await reconciler.prepare_order("alice", "standard")

    assert order.status == OrderStatus.PREPARED
    assert order.expected_amount == 10000
    assert order.credits == 5000
    assert order.user_id == "alice"
    assert order.order_id.startswith("ORDER_")


@pytest.mark.asyncio
async def test_prepare_order_rejects_unknown_package(db_session, create_account):
    await create_account("alice")
    reconciler = PaymentReconciler(db_session)

    with pytest.raises(InvalidPackage):
        await reconciler.prepare_order("alice", "platinum")


@pytest.mark.asyncio
async def test_prepare_order_requires_account(db_session):
    reconciler = PaymentReconciler(db_session)

    with pytest.raises(AccountNotFound):
        await reconciler.prepare_order("nobody", "basic")


@pytest.mark.asyncio
async def test_confirm_grants_credits_once(db_session, create_account):
    await create_account("bob")
    gateway = FakePaymentGateway(method="card")
    reconciler = PaymentReconciler(db_session, gateway=gateway)
    order = await reconciler.prepare_order("bob", "standard")

    outcome = await reconciler.confirm_order(order.order_id, "pay_123", 10000)

    assert outcome.credits_granted == 5000
    assert outcome.balance == 5000
    assert outcome.replayed is False
    assert gateway.calls == [("pay_123", order.order_id, 10000)]

    order = await reconciler.get_order(order.order_id)
    assert order.status == OrderStatus.CONFIRMED
    assert order.gateway_payment_id == "pay_123"
    assert order.payment_method == "card"

    charges = await _charges(db_session, "bob")
    assert len(charges) == 1
    assert charges[0].credit_amount == 5000
    assert charges[0].actual_amount == 10000
    assert charges[0].order_id == order.order_id
    account = await CreditLedgerService(db_session).get_account("bob")
    assert account.lifetime_credits == 5000


@pytest.mark.asyncio
async def test_duplicate_confirmation_is_replayed(db_session, create_account):
    await create_account("carol")
    gateway = FakePaymentGateway()
    reconciler = PaymentReconciler(db_session, gateway=gateway)
    order = await reconciler.prepare_order("carol", "standard")

    first = await reconciler.confirm_order(order.order_id, "pay_1", 10000)
    second = await reconciler.confirm_order(order.order_id, "pay_1", 10000)

    assert second.replayed is True
    assert second.transaction_id == first.transaction_id
    assert second.balance == 5000
    # The replay never reaches the gateway
    assert len(gateway.calls) == 1
    assert await CreditLedgerService(db_session).get_balance("carol") == 5000
    assert len(await _charges(db_session, "carol")) == 1


@pytest.mark.asyncio
async def test_concurrent_confirmations_grant_once(session_factory, create_account):
    await create_account("dave")
    async with session_factory() as session:
        order = await PaymentReconciler(session).prepare_order("dave", "premium")
    gateway = FakePaymentGateway()

    async def confirm():
        async with session_factory() as session:
            reconciler = PaymentReconciler(session, gateway=gateway)
            return await reconciler.confirm_order(order.order_id, "pay_1", 20000)

    first, second = await asyncio.gather(confirm(), confirm())

    assert {first.replayed, second.replayed} == {False, True}
    assert first.transaction_id == second.transaction_id
    async with session_factory() as session:
        ledger = CreditLedgerService(session)
        assert await ledger.get_balance("dave") == 12000
        assert len(await _charges(session, "dave")) == 1
        assert await ledger.verify_consistency("dave") is True


@pytest.mark.asyncio
async def test_amount_mismatch_fails_prepared_order(db_session, create_account):
    await create_account("erin")
    gateway = FakePaymentGateway()
    reconciler = PaymentReconciler(db_session, gateway=gateway)
    order = await reconciler.prepare_order("erin", "standard")

    with pytest.raises(AmountMismatch) as exc_info:
        await reconciler.confirm_order(order.order_id, "pay_1", 100)

    assert exc_info.value.details == {
        "order_id": order.order_id,
        "expected": 10000,
        "received": 100,
    }
    assert gateway.calls == []
    order = await reconciler.get_order(order.order_id)
    assert order.status == OrderStatus.FAILED
    assert await CreditLedgerService(db_session).get_balance("erin") == 0

    # The failed order can no longer be confirmed, even with the right amount
    with pytest.raises(OrderStateConflict) as exc_info:
        await reconciler.confirm_order(order.order_id, "pay_1", 10000)
    assert_ledger_exception(exc_info.value, MessageCode.ORDER_ALREADY_FAILED, 409)


@pytest.mark.asyncio
async def test_amount_mismatch_on_confirmed_order_changes_nothing(
    db_session, create_account
):
    await create_account("frank")
    reconciler = PaymentReconciler(db_session, gateway=FakePaymentGateway())
    order = await reconciler.prepare_order("frank", "basic")
    await reconciler.confirm_order(order.order_id, "pay_1", 2500)

    with pytest.raises(AmountMismatch):
        await reconciler.confirm_order(order.order_id, "pay_1", 1)

    order = await reconciler.get_order(order.order_id)
    assert order.status == OrderStatus.CONFIRMED
    assert await CreditLedgerService(db_session).get_balance("frank") == 1000


@pytest.mark.asyncio
async def test_unknown_order(db_session):
    reconciler = PaymentReconciler(db_session, gateway=FakePaymentGateway())

    with pytest.raises(UnknownOrder):
        await reconciler.confirm_order("ORDER_missing", "pay_1", 10000)


@pytest.mark.asyncio
async def test_gateway_rejection_fails_order(db_session, create_account):
    await create_account("grace")
    gateway = FakePaymentGateway(status="ABORTED")
    reconciler = PaymentReconciler(db_session, gateway=gateway)
    order = await reconciler.prepare_order("grace", "basic")

    with pytest.raises(PaymentRejected) as exc_info:
        await reconciler.confirm_order(order.order_id, "pay_1", 2500)

    assert exc_info.value.details["gateway_status"] == "ABORTED"
    order = await reconciler.get_order(order.order_id)
    assert order.status == OrderStatus.FAILED
    assert await CreditLedgerService(db_session).get_balance("grace") == 0


@pytest.mark.asyncio
async def test_gateway_outage_leaves_order_prepared(db_session, create_account):
    await create_account("heidi")
    gateway = FakePaymentGateway(
        error=PaymentGatewayError("Payment gateway unavailable", code="PROVIDER_ERROR")
    )
    reconciler = PaymentReconciler(db_session, gateway=gateway)
    order = await reconciler.prepare_order("heidi", "basic")

    with pytest.raises(ExternalCollaboratorFailure) as exc_info:
        await reconciler.confirm_order(order.order_id, "pay_1", 2500)

    assert exc_info.value.details["gateway_code"] == "PROVIDER_ERROR"
    order = await reconciler.get_order(order.order_id)
    assert order.status == OrderStatus.PREPARED

    # Retrying once the gateway recovers succeeds
    gateway.error = None
    outcome = await reconciler.confirm_order(order.order_id, "pay_1", 2500)
    assert outcome.balance == 1000


@pytest.mark.asyncio
async def test_confirm_without_gateway_trusts_caller(db_session, create_account):
    await create_account("ivan")
    reconciler = PaymentReconciler(db_session, gateway=None)
    order = await reconciler.prepare_order("ivan", "basic")

    outcome = await reconciler.confirm_order(
        order.order_id, "pay_1", 2500, payment_method="transfer"
    )

    assert outcome.balance == 1000
    order = await reconciler.get_order(order.order_id)
    assert order.payment_method == "transfer"


@pytest.mark.asyncio
async def test_fail_order(db_session, create_account, order_factory):
    await create_account("judy")
    order = await order_factory.create_async(db_session, user_id="judy")
    reconciler = PaymentReconciler(db_session)

    failed = await reconciler.fail_order(order.order_id, "USER_CANCEL: closed window")

    assert failed.status == OrderStatus.FAILED
    assert failed.failure_reason == "USER_CANCEL: closed window"
    # Failing twice keeps the first reason
    again = await reconciler.fail_order(order.order_id, "other")
    assert again.failure_reason == "USER_CANCEL: closed window"


@pytest.mark.asyncio
async def test_fail_confirmed_order_is_rejected(db_session, create_account):
    await create_account("karl")
    reconciler = PaymentReconciler(db_session, gateway=FakePaymentGateway())
    order = await reconciler.prepare_order("karl", "basic")
    await reconciler.confirm_order(order.order_id, "pay_1", 2500)

    with pytest.raises(OrderStateConflict) as exc_info:
        await reconciler.fail_order(order.order_id, "too late")

    assert_ledger_exception(exc_info.value, MessageCode.ORDER_ALREADY_CONFIRMED, 409)
    assert await CreditLedgerService(db_session).get_balance("karl") == 1000


@pytest.mark.asyncio
async def test_apply_gateway_status(db_session, create_account, order_factory):
    await create_account("lena")
    done = await order_factory.create_async(db_session, user_id="lena")
    cancelled = await order_factory.create_async(db_session, user_id="lena")
    waiting = await order_factory.create_async(db_session, user_id="lena")
    gateway = FakePaymentGateway()
    reconciler = PaymentReconciler(db_session, gateway=gateway)

    outcome = await reconciler.apply_gateway_status(
        done.order_id, "DONE", "pay_1", 10000, payment_method="card"
    )
    failed = await reconciler.apply_gateway_status(
        cancelled.order_id, "CANCELED", "pay_2", 10000
    )
    ignored = await reconciler.apply_gateway_status(
        waiting.order_id, "WAITING_FOR_DEPOSIT", "pay_3", 10000
    )

    assert outcome.credits_granted == 5000
    assert failed.status == OrderStatus.FAILED
    assert ignored is None
    # Pushed statuses are already gateway-approved
    assert gateway.calls == []
    assert (await reconciler.get_order(waiting.order_id)).status == OrderStatus.PREPARED


@pytest.mark.asyncio
async def test_list_orders_is_scoped_to_user(
    db_session, create_account, order_factory
):
    await create_account("mike")
    await create_account("nina")
    await order_factory.create_batch_async(db_session, 3, user_id="mike")
    await order_factory.create_async(
        db_session, user_id="nina", package=CREDIT_PACKAGES["basic"]
    )
    reconciler = PaymentReconciler(db_session)

    orders, total = await reconciler.list_orders("mike", page=1, page_size=2)

    assert total == 3
    assert len(orders) == 2
    assert all(order.user_id == "mike" for order in orders)


def _reconciliation_events(logs: list[dict]) -> list[dict]:
    return [
        entry
        for entry in logs
        if entry.get("requires_reconciliation") and entry["log_level"] == "error"
    ]


@pytest.mark.asyncio
async def test_grant_failure_rolls_back_order_and_credit(
    db_session, create_account, monkeypatch
):
    await create_account("olivia")

    with capture_logs() as logs:
        reconciler = PaymentReconciler(db_session, gateway=FakePaymentGateway())
        order = await reconciler.prepare_order("olivia", "standard")

        def failing_stage(*args, **kwargs):
            raise OperationalError(
                "INSERT INTO idempotency_records", {}, Exception("disk I/O error")
            )

        monkeypatch.setattr(reconciler.idempotency, "stage", failing_stage)
        with pytest.raises(StorageFailure):
            await reconciler.confirm_order(order.order_id, "pay_1", 10000)

    order = await reconciler.get_order(order.order_id)
    assert order.status == OrderStatus.PREPARED
    assert order.gateway_payment_id is None
    ledger = CreditLedgerService(db_session)
    assert await ledger.get_balance("olivia") == 0
    assert await _charges(db_session, "olivia") == []
    assert await ledger.verify_consistency("olivia") is True

    [event] = _reconciliation_events(logs)
    assert event["order_id"] == order.order_id
    assert event["gateway_payment_id"] == "pay_1"


@pytest.mark.asyncio
async def test_already_captured_payment_is_flagged(db_session, create_account):
    await create_account("pavel")
    gateway = FakePaymentGateway(
        error=PaymentGatewayError(
            "Already processed payment", code=GATEWAY_ALREADY_PROCESSED
        )
    )

    with capture_logs() as logs:
        reconciler = PaymentReconciler(db_session, gateway=gateway)
        order = await reconciler.prepare_order("pavel", "basic")
        with pytest.raises(ExternalCollaboratorFailure) as exc_info:
            await reconciler.confirm_order(order.order_id, "pay_1", 2500)

    assert exc_info.value.details["gateway_code"] == GATEWAY_ALREADY_PROCESSED
    assert (await reconciler.get_order(order.order_id)).status == OrderStatus.PREPARED
    [event] = _reconciliation_events(logs)
    assert event["order_id"] == order.order_id


@pytest.mark.asyncio
async def test_gateway_outage_is_not_flagged(db_session, create_account):
    await create_account("quentin")
    gateway = FakePaymentGateway(error=PaymentGatewayError("Payment gateway unavailable"))

    with capture_logs() as logs:
        reconciler = PaymentReconciler(db_session, gateway=gateway)
        order = await reconciler.prepare_order("quentin", "basic")
        with pytest.raises(ExternalCollaboratorFailure):
            await reconciler.confirm_order(order.order_id, "pay_1", 2500)

    assert _reconciliation_events(logs) == []
