"""HTTP stream source — stream notes from a remote generate-notes endpoint.

POSTs the request to ``{base_url}/api/generate-notes`` and exposes the
streamed response body as raw byte chunks. The response is held open until
the consumer releases the stream.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import httpx

from relnotes.exceptions import NetworkError, ProtocolError

if TYPE_CHECKING:
    from relnotes.notes.request import GenerationRequest

logger = logging.getLogger(__name__)

GENERATE_NOTES_PATH = "/api/generate-notes"

# Bytes of an error body kept for diagnostics
_ERROR_DETAIL_LIMIT = 500


class HTTPNoteStream:
    """Byte chunks of one streamed generate-notes response."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.TransportError as e:
            raise NetworkError(f"Note stream interrupted: {e}") from e

    async def aclose(self) -> None:
        if self._closed:
            return
        await self._response.aclose()
        self._closed = True


class HTTPNoteSource:
    """Stream opener for a remote service exposing POST /api/generate-notes."""

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client
        self._timeout = timeout

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the shared AsyncClient."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the shared HTTP client and release connections."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def open_stream(self, request: GenerationRequest) -> HTTPNoteStream:
        """Start a streamed generation and return its body stream.

        Raises:
            ProtocolError: If the endpoint answers with a non-2xx status.
            NetworkError: If the endpoint cannot be reached.
        """
        client = self._get_http_client()
        payload: dict[str, Any] = {
            "id": request.item_id,
            "diff": request.diff,
            "description": request.description,
        }
        if request.owner:
            payload["owner"] = request.owner
        if request.repo:
            payload["repo"] = request.repo

        http_request = client.build_request(
            "POST",
            f"{self.base_url}{GENERATE_NOTES_PATH}",
            json=payload,
        )
        try:
            response = await client.send(http_request, stream=True)
        except httpx.TransportError as e:
            raise NetworkError(f"Could not reach {self.base_url}: {type(e).__name__}") from e

        if not response.is_success:
            detail = await _read_error_detail(response)
            raise ProtocolError(
                f"HTTP error! status: {response.status_code}",
                status_code=response.status_code,
                detail=detail,
            )

        logger.debug("Streaming notes for %s from %s", request.item_id, self.base_url)
        return HTTPNoteStream(response)


async def _read_error_detail(response: httpx.Response) -> str:
    try:
        await response.aread()
        return response.text[:_ERROR_DETAIL_LIMIT]
    except httpx.HTTPError:
        return ""
    finally:
        await response.aclose()
