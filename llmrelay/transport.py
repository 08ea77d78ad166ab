import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from .config import transport_timeout
from .errors import ResponseParseFailed, TransportError
from .types import WebRequest

logger = logging.getLogger(__name__)


def _error_message(body: bytes) -> str:
    """Pull the vendor's error message out of an error body."""
    text = body.decode("utf-8", errors="replace")
    try:
        data = json.loads(text)
    except ValueError:
        return text[:500]
    if isinstance(data, list) and data:
        data = data[0]
    if not isinstance(data, dict):
        return text[:500]
    error = data.get("error")
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    if isinstance(error, str):
        return error
    return data.get("message") or text[:500]


class HttpxTransport:
    """
    Sends WebRequests with httpx. The only component that performs I/O.

    Args:
        client (httpx.AsyncClient, optional): Client to use. When omitted a
            client is created on first use and closed by `aclose()`.
        timeout (float, optional): Request timeout in seconds. Defaults to
            LLMRELAY_TIMEOUT or 60s.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: Optional[float] = None):
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout if timeout is not None else transport_timeout()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send(self, request: WebRequest) -> Dict[str, Any]:
        """
        Send a request and return the decoded JSON body.

        Raises:
            TransportError: On timeouts, connection errors and non-2xx status.
            ResponseParseFailed: If a 2xx body is not JSON.
        """
        url = request["url"]
        try:
            response = await self._get_client().request(
                request["method"],
                url,
                headers=request["headers"],
                json=request["payload"],
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Timeout calling {url}: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error calling {url}: {e}") from e

        if response.status_code >= 400:
            raise self._status_error(url, response.status_code, response.content)

        try:
            return response.json()
        except ValueError as e:
            raise ResponseParseFailed(f"Response from {url} is not JSON", raw=response.text[:2000]) from e

    async def stream(self, request: WebRequest) -> AsyncIterator[bytes]:
        """
        Send a request and yield the raw response body chunks as they arrive.

        Closing the iterator early closes the HTTP response.

        Raises:
            TransportError: On timeouts, connection errors and non-2xx status.
        """
        url = request["url"]
        try:
            async with self._get_client().stream(
                request["method"],
                url,
                headers=request["headers"],
                json=request["payload"],
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise self._status_error(url, response.status_code, body)

                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.TimeoutException as e:
            raise TransportError(f"Timeout streaming from {url}: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error streaming from {url}: {e}") from e

    @staticmethod
    def _status_error(url: str, status_code: int, body: bytes) -> TransportError:
        message = _error_message(body)
        logger.warning("%s returned HTTP %d: %s", url, status_code, message)
        return TransportError(
            f"HTTP {status_code} from {url}: {message}",
            status_code=status_code,
            body=body.decode("utf-8", errors="replace")[:2000],
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
