# transport.py
# JSON-over-HTTP access to the agent service.
#
# Connection handling, TLS and timeouts belong to httpx. This layer only maps
# what can go wrong onto the client's error taxonomy and hands back decoded
# JSON objects.

import logging
from typing import Any

import httpx

from scene_agent.errors import HttpStatusError, MalformedResponseError, TransportUnreachableError
from scene_agent.parser import decode_body

logger = logging.getLogger(__name__)


class AgentTransport:
    """
    Thin wrapper around an httpx.Client bound to the agent base URL.

    Pass `transport=httpx.MockTransport(...)` to serve requests in-process.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "AgentTransport":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def get(self, path: str) -> dict[str, Any]:
        return self._request("GET", path)

    def post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", path, body)

    def _request(self, method: str, path: str, body: dict[str, Any] | None = None) -> dict[str, Any]:
        logger.debug("%s %s", method, path)
        try:
            response = self._client.request(method, path, json=body)
        except httpx.DecodingError as exc:
            logger.warning("%s %s returned an undecodable body: %s", method, path, exc)
            raise MalformedResponseError(f"Response body could not be decoded: {exc}") from exc
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise TransportUnreachableError(
                f"Could not reach agent service: {exc or exc.__class__.__name__}"
            ) from exc

        if not response.is_success:
            server_error = _error_text(response)
            message = f"Agent service returned HTTP {response.status_code}"
            if server_error:
                message = f"{message}: {server_error}"
            raise HttpStatusError(message, response.status_code, server_error)

        try:
            return decode_body(response.content)
        except MalformedResponseError:
            logger.warning("%s %s returned a malformed body", method, path)
            raise


def _error_text(response: httpx.Response) -> str:
    """The `error` field of a JSON error body, or a short text snippet."""
    try:
        data = response.json()
    except ValueError:
        return response.text.strip()[:200]
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"].strip()
    return ""
