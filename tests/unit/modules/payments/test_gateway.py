"""Tests for the payment gateway and inference server clients."""

import asyncio

import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from src.api.core.exceptions.errors import ExternalCollaboratorFailure
from src.database.models import OrderStatus
from src.modules.payments.gateway import PaymentGatewayClient, PaymentGatewayError
from src.modules.payments.reconciler import PaymentReconciler
from src.modules.usage.inference import InferenceClient, InferenceServiceError

CONFIRM_PATH = "/v1/payments/confirm"


@pytest.fixture
def gateway() -> PaymentGatewayClient:
    return PaymentGatewayClient(url="https://gateway.test/", secret_key="test_sk")


@pytest.fixture
def inference() -> InferenceClient:
    return InferenceClient(url="https://inference.test/", api_key="")


@pytest_asyncio.fixture
async def serve():
    """Start a local aiohttp server answering POST ``path`` with ``handler``."""
    servers: list[test_utils.TestServer] = []

    async def start(path: str, handler) -> str:
        app = web.Application()
        app.router.add_post(path, handler)
        server = test_utils.TestServer(app)
        await server.start_server()
        servers.append(server)
        return str(server.make_url(""))

    yield start
    for server in servers:
        await server.close()


async def _slow(request: web.Request) -> web.Response:
    await asyncio.sleep(0.5)
    return web.json_response({})


async def _html_bad_gateway(request: web.Request) -> web.Response:
    return web.Response(
        status=502, text="<html>Bad Gateway</html>", content_type="text/html"
    )


def test_gateway_client_normalizes_url(gateway):
    assert gateway.url == "https://gateway.test"
    assert gateway.auth.login == "test_sk"
    assert gateway.auth.password == ""


def test_parse_card_payment(gateway):
    payment = gateway._parse_payment(
        {
            "paymentKey": "pay_1",
            "orderId": "ORDER_1",
            "status": "DONE",
            "totalAmount": 10000,
            "method": "card",
        }
    )

    assert payment.payment_key == "pay_1"
    assert payment.order_id == "ORDER_1"
    assert payment.status == "DONE"
    assert payment.total_amount == 10000
    assert payment.method == "card"


def test_easy_pay_provider_overrides_method(gateway):
    payment = gateway._parse_payment(
        {
            "paymentKey": "pay_1",
            "orderId": "ORDER_1",
            "status": "DONE",
            "totalAmount": "2500",
            "method": "easyPay",
            "easyPay": {"provider": "KakaoPay"},
        }
    )

    assert payment.method == "KakaoPay"
    assert payment.total_amount == 2500


@pytest.mark.parametrize(
    "data",
    [
        None,
        ["not", "a", "dict"],
        {"orderId": "ORDER_1", "status": "DONE"},
        {"paymentKey": "p", "orderId": "o", "status": "DONE", "totalAmount": "n/a"},
    ],
)
def test_malformed_gateway_responses(gateway, data):
    with pytest.raises(PaymentGatewayError):
        gateway._parse_payment(data)


def test_inference_result_is_unwrapped(inference):
    assert inference.url == "https://inference.test"
    assert inference._parse_result("tarot", {"result": {"card": "The Fool"}}) == {
        "card": "The Fool"
    }
    assert inference._parse_result("chat", {"reply": "hello"}) == {"reply": "hello"}
    assert inference._parse_result("chat", {"result": "hello"}) == {"result": "hello"}


@pytest.mark.parametrize("data", ["oops", {"error": "model overloaded"}])
def test_inference_errors(inference, data):
    with pytest.raises(InferenceServiceError):
        inference._parse_result("tarot", data)


@pytest.mark.asyncio
async def test_gateway_confirms_payment(serve):
    received = {}

    async def confirm(request: web.Request) -> web.Response:
        received["auth"] = request.headers.get("Authorization")
        received["body"] = await request.json()
        return web.json_response(
            {
                "paymentKey": "pay_1",
                "orderId": "ORDER_1",
                "status": "DONE",
                "totalAmount": 10000,
                "method": "card",
            }
        )

    url = await serve(CONFIRM_PATH, confirm)
    client = PaymentGatewayClient(url=url, secret_key="test_sk")

    payment = await client.confirm_payment("pay_1", "ORDER_1", 10000)

    assert payment.status == "DONE"
    assert payment.total_amount == 10000
    assert received["auth"].startswith("Basic ")
    assert received["body"] == {
        "paymentKey": "pay_1",
        "orderId": "ORDER_1",
        "amount": 10000,
    }


@pytest.mark.asyncio
async def test_gateway_error_body_carries_code(serve):
    async def reject(request: web.Request) -> web.Response:
        return web.json_response(
            {"code": "ALREADY_PROCESSED_PAYMENT", "message": "Already processed"},
            status=400,
        )

    url = await serve(CONFIRM_PATH, reject)
    client = PaymentGatewayClient(url=url, secret_key="test_sk")

    with pytest.raises(PaymentGatewayError) as exc_info:
        await client.confirm_payment("pay_1", "ORDER_1", 10000)

    assert exc_info.value.code == "ALREADY_PROCESSED_PAYMENT"
    assert str(exc_info.value) == "Already processed"


@pytest.mark.asyncio
async def test_gateway_timeout_is_a_gateway_error(serve):
    url = await serve(CONFIRM_PATH, _slow)
    client = PaymentGatewayClient(url=url, secret_key="test_sk", timeout=0.05)

    with pytest.raises(PaymentGatewayError) as exc_info:
        await client.confirm_payment("pay_1", "ORDER_1", 10000)

    assert exc_info.value.code == "TIMEOUT"


@pytest.mark.asyncio
async def test_gateway_html_error_page_is_a_gateway_error(serve):
    url = await serve(CONFIRM_PATH, _html_bad_gateway)
    client = PaymentGatewayClient(url=url, secret_key="test_sk")

    with pytest.raises(PaymentGatewayError) as exc_info:
        await client.confirm_payment("pay_1", "ORDER_1", 10000)

    assert str(exc_info.value) == "Payment confirmation failed: 502"


@pytest.mark.asyncio
async def test_gateway_non_json_success_is_malformed(serve):
    async def html_ok(request: web.Request) -> web.Response:
        return web.Response(text="<html>OK</html>", content_type="text/html")

    url = await serve(CONFIRM_PATH, html_ok)
    client = PaymentGatewayClient(url=url, secret_key="test_sk")

    with pytest.raises(PaymentGatewayError, match="Malformed gateway response"):
        await client.confirm_payment("pay_1", "ORDER_1", 10000)


@pytest.mark.asyncio
async def test_gateway_outage_page_leaves_order_prepared(
    serve, db_session, create_account
):
    await create_account("olga")
    url = await serve(CONFIRM_PATH, _html_bad_gateway)
    reconciler = PaymentReconciler(
        db_session, gateway=PaymentGatewayClient(url=url, secret_key="test_sk")
    )
    order = await reconciler.prepare_order("olga", "basic")

    with pytest.raises(ExternalCollaboratorFailure) as exc_info:
        await reconciler.confirm_order(order.order_id, "pay_1", 2500)

    assert exc_info.value.details["order_id"] == order.order_id
    order = await reconciler.get_order(order.order_id)
    assert order.status == OrderStatus.PREPARED


@pytest.mark.asyncio
async def test_inference_timeout_is_a_service_error(serve):
    url = await serve("/services/tarot", _slow)
    client = InferenceClient(url=url, api_key="", timeout=0.05)

    with pytest.raises(InferenceServiceError, match="timed out"):
        await client.invoke("tarot", {})


@pytest.mark.asyncio
async def test_inference_invalid_json_is_a_service_error(serve):
    async def broken(request: web.Request) -> web.Response:
        return web.Response(text="{not json", content_type="application/json")

    url = await serve("/services/tarot", broken)
    client = InferenceClient(url=url, api_key="")

    with pytest.raises(InferenceServiceError, match="Malformed result"):
        await client.invoke("tarot", {})
