"""Client for the payment gateway's confirm API."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import aiohttp

from src.utils.settings.payments import payment_settings


logger = logging.getLogger(__name__)


class PaymentGatewayError(RuntimeError):
    """The gateway could not be reached or refused the request."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class GatewayPayment:
    payment_key: str
    order_id: str
    status: str
    total_amount: int
    method: str | None = None


class PaymentGatewayClient:
    """Confirms client-approved payments with the gateway."""

    def __init__(
        self,
        url: str | None = None,
        secret_key: str | None = None,
        timeout: float | None = None,
    ):
        self.url = (url or payment_settings.PAYMENT_GATEWAY_URL).rstrip("/")
        secret = (
            secret_key
            if secret_key is not None
            else payment_settings.PAYMENT_SECRET_KEY.get_secret_value()
        )
        # Secret key as username with an empty password
        self.auth = aiohttp.BasicAuth(secret, "")
        self.timeout = timeout or payment_settings.PAYMENT_GATEWAY_TIMEOUT

    async def confirm_payment(
        self, payment_key: str, order_id: str, amount: int
    ) -> GatewayPayment:
        async with aiohttp.ClientSession() as session:
            try:
                async with session.post(
                    f"{self.url}/v1/payments/confirm",
                    json={
                        "paymentKey": payment_key,
                        "orderId": order_id,
                        "amount": amount,
                    },
                    auth=self.auth,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    try:
                        data = await response.json(content_type=None)
                    except ValueError:
                        # Proxies answer outages with HTML pages
                        data = None
                    if response.status >= 400:
                        data = data if isinstance(data, dict) else {}
                        message = data.get("message") or (
                            f"Payment confirmation failed: {response.status}"
                        )
                        logger.error(f"Gateway rejected confirm for {order_id}: {message}")
                        raise PaymentGatewayError(message, code=data.get("code"))
            except asyncio.TimeoutError:
                logger.error(f"Payment gateway timed out confirming {order_id}")
                raise PaymentGatewayError(
                    f"Payment gateway timed out after {self.timeout}s", code="TIMEOUT"
                )
            except aiohttp.ClientError as e:
                logger.error(f"Payment gateway request failed: {e}")
                raise PaymentGatewayError(f"Payment gateway unavailable: {e}")

        return self._parse_payment(data)

    def _parse_payment(self, data: Any) -> GatewayPayment:
        if not isinstance(data, dict):
            raise PaymentGatewayError("Malformed gateway response")
        try:
            method = data.get("method")
            easy_pay = data.get("easyPay") or {}
            if easy_pay.get("provider"):
                method = easy_pay["provider"]
            return GatewayPayment(
                payment_key=data["paymentKey"],
                order_id=data["orderId"],
                status=data["status"],
                total_amount=int(data.get("totalAmount", 0)),
                method=method,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise PaymentGatewayError(f"Malformed gateway response: {e}")
