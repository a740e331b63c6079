"""
HTTP client for the RAGLite backend.

The streaming call is the byte source for the stream processor: it yields
raw body chunks exactly as they arrive and leaves all parsing to
raglite_chat.streaming. The other calls are plain request/response.
"""
import logging
from typing import Any, AsyncIterator, Optional

import httpx

from .models import Conversation, RAGRequest, RAGResponse, StreamRequest
from ..chat.message_state import Dataset
from ..constants import (
    CONVERSATIONS_PATH,
    DATASETS_PATH,
    DEFAULT_API_URL,
    DEFAULT_CONVERSATION_HISTORY,
    DEFAULT_STREAM_TIMEOUT,
    DEFAULT_TIMEOUT,
    HEALTH_PATH,
    RAG_PATH,
    STREAM_PATH,
)
from ..errors import RAGClientError


logger = logging.getLogger(__name__)


class RAGApiClient:
    """
    Async client for the RAGLite backend API.

    A new httpx.AsyncClient is opened per call. Tests and embedding
    applications can pass a custom transport (e.g. httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        stream_timeout: float = DEFAULT_STREAM_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Backend root URL
            timeout: Timeout in seconds for plain requests
            stream_timeout: Read timeout in seconds for the streaming request
            transport: Optional httpx transport override
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._stream_timeout = stream_timeout
        self._transport = transport
        self._headers = {"Content-Type": "application/json"}

    @property
    def base_url(self) -> str:
        return self._base_url

    def _client(self, timeout: httpx.Timeout) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=timeout,
            transport=self._transport,
        )

    async def stream_message(self, request: StreamRequest) -> AsyncIterator[bytes]:
        """
        Open the streaming chat request and yield raw body chunks.

        Args:
            request: Query, dataset and conversation to send

        Yields:
            Byte chunks in arrival order; returning normally is the
            completion signal

        Raises:
            httpx.HTTPError: On connection failure, timeout or a non-2xx status
        """
        timeout = httpx.Timeout(self._timeout, read=self._stream_timeout)
        async with self._client(timeout) as client:
            async with client.stream("POST", STREAM_PATH, json=request.to_payload()) as response:
                response.raise_for_status()
                logger.debug(f"Stream opened: HTTP {response.status_code}")
                async for chunk in response.aiter_bytes():
                    if chunk:
                        yield chunk

    async def send_message(self, request: RAGRequest) -> RAGResponse:
        """
        Send a non-streaming RAG request.

        Raises:
            RAGClientError: If the request fails
        """
        data = await self._request("POST", RAG_PATH, json=request.to_payload())
        return RAGResponse.from_dict(data)

    async def list_datasets(self) -> list[Dataset]:
        """
        List the datasets available on the backend.

        Raises:
            RAGClientError: If the request fails or the payload is malformed
        """
        data = await self._request("GET", DATASETS_PATH)
        try:
            return [Dataset.from_dict(item) for item in data.get("datasets") or []]
        except (KeyError, TypeError, ValueError) as e:
            raise RAGClientError(f"Malformed dataset listing: {e}")

    async def get_conversation(
        self,
        conversation_id: str,
        last_n: int = DEFAULT_CONVERSATION_HISTORY,
    ) -> Conversation:
        """
        Fetch the last messages of a stored conversation.

        Raises:
            RAGClientError: If the request fails
        """
        data = await self._request(
            "GET",
            f"{CONVERSATIONS_PATH}/{conversation_id}",
            params={"last_n": last_n},
        )
        return Conversation.from_dict(conversation_id, data)

    async def health_check(self) -> bool:
        """
        Check whether the backend answers its health endpoint.

        Returns:
            True on HTTP 200, False on any failure
        """
        try:
            async with self._client(httpx.Timeout(self._timeout)) as client:
                response = await client.get(HEALTH_PATH)
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"Health check failed: {e}")
            return False

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict:
        try:
            async with self._client(httpx.Timeout(self._timeout)) as client:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise RAGClientError(
                f"{method} {path} failed with HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            )
        except httpx.HTTPError as e:
            raise RAGClientError(f"{method} {path} failed: {e}")
        except ValueError as e:
            raise RAGClientError(f"{method} {path} returned invalid JSON: {e}")

        if not isinstance(data, dict):
            raise RAGClientError(f"{method} {path} returned an unexpected payload")
        return data
