"""Client for the remote AI inference server."""

import asyncio
import logging
from typing import Any

import aiohttp

from src.utils.settings.inference import inference_settings


logger = logging.getLogger(__name__)


class InferenceServiceError(RuntimeError):
    """The inference server did not produce a result."""


class InferenceClient:
    """Client for running a paid AI service on the inference server.

    The caller bounds the overall wait; this client only sets a transport
    timeout as a backstop.
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        self.url = (url or inference_settings.INFERENCE_SERVER_URL).rstrip("/")
        self.api_key = (
            api_key
            if api_key is not None
            else inference_settings.INFERENCE_API_KEY.get_secret_value()
        )
        self.timeout = timeout

    async def invoke(self, service_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Run ``service_id`` on ``payload`` and return the result document."""
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with aiohttp.ClientSession() as session:
            try:
                async with session.post(
                    f"{self.url}/services/{service_id}",
                    json=payload,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    response.raise_for_status()
                    data = await response.json()
            except aiohttp.ClientResponseError as e:
                logger.error(f"Inference server returned {e.status} for {service_id}")
                raise InferenceServiceError(
                    f"Inference server error {e.status} for {service_id}"
                )
            except asyncio.TimeoutError:
                logger.error(f"Inference server timed out for {service_id}")
                raise InferenceServiceError(f"Inference server timed out for {service_id}")
            except aiohttp.ClientError as e:
                logger.error(f"Inference server request failed: {e}")
                raise InferenceServiceError(f"Inference server unavailable: {e}")
            except ValueError as e:
                logger.error(f"Inference server sent invalid JSON for {service_id}: {e}")
                raise InferenceServiceError(f"Malformed result for {service_id}")

        return self._parse_result(service_id, data)

    def _parse_result(self, service_id: str, data: Any) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise InferenceServiceError(f"Malformed result for {service_id}")
        if data.get("error"):
            raise InferenceServiceError(f"{service_id} failed: {data['error']}")
        result = data.get("result", data)
        return result if isinstance(result, dict) else {"result": result}
