# /graphrag_client/transport.py

from typing import Any, AsyncIterator, Dict, Optional
import httpx

from graphrag_core.config import settings
from graphrag_core.errors import DecodeError, TransportError
from graphrag_core.logger import get_logger
from graphrag_client.streaming_logic import decode_event_data, iter_sse_data

logger = get_logger(__name__)

DEFAULT_NETWORK_ERROR = "A network error occurred"


class TransportClient:
    """
    Issues HTTP requests and opens the server-push channel against a fixed base URL.
    Every transport-level failure is unwrapped into a TransportError.
    """
    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.base_url = base_url or settings.GRAPHRAG_API_BASE_URL
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS
        # httpx sets the Content-Type per request (JSON or multipart)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "TransportClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        files: Any = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Sends one request and returns the decoded JSON body."""
        logger.info("Sending request", extra={"method": method, "path": path})
        try:
            response = await self._client.request(
                method, path, json=json, params=params, files=files, data=data
            )
        except httpx.HTTPError as e:
            logger.error("Request failed", extra={"method": method, "path": path, "error": str(e)})
            raise TransportError(str(e) or DEFAULT_NETWORK_ERROR) from e

        logger.info("Received response", extra={"method": method, "path": path, "status": response.status_code})
        if response.is_error:
            raise TransportError(_error_message(response), status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"Response from {path} is not valid JSON", raw=response.text) from e

    async def open_stream(self, path: str, params: Optional[Dict[str, Any]] = None) -> AsyncIterator[Dict[str, Any]]:
        """
        Opens the server-push channel and yields each decoded message body.
        Closing the iterator closes the underlying HTTP response.
        """
        logger.info("Opening push channel", extra={"path": path})
        # No read timeout: the server may stay silent between pushes
        timeout = httpx.Timeout(self.timeout, read=None)
        try:
            async with self._client.stream(
                "GET", path, params=params, timeout=timeout,
                headers={"Accept": "text/event-stream"},
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise TransportError(_error_message(response), status_code=response.status_code)
                async for data in iter_sse_data(response.aiter_lines()):
                    yield decode_event_data(data)
        except httpx.HTTPError as e:
            logger.error("Push channel failed", extra={"path": path, "error": str(e)})
            raise TransportError(str(e) or DEFAULT_NETWORK_ERROR) from e
        finally:
            logger.info("Push channel closed", extra={"path": path})


def _error_message(response: httpx.Response) -> str:
    """Prefers the backend's own message, else the transport's description."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"Request failed with status code {response.status_code}"
