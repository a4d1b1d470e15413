"""
Streaming HTTP client for the inference endpoint.

The client is constructed explicitly from a ``ProviderConfig`` and owns its
``httpx.AsyncClient``; nothing is initialized at import time.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Any

import httpx

from .exceptions import LLMError, ProviderError, StreamingError
from .models import (
    ChatRequest,
    FinalizedResponse,
    ProviderConfig,
    VersionPlacement,
)
from .streaming.parser import SSEFrameReader

logger = logging.getLogger(__name__)

HTTP_OK = 200
EXPECTED_CONTENT_TYPES = ("text/event-stream", "stream")


class StreamingLLMClient:
    """
    LLM client that returns the raw frame source of a streaming call, or
    the whole reply of a non-streaming one.

    Usage:
        async with StreamingLLMClient(provider) as client:
            async for frame in client.stream_frames(request):
                ...
    """

    def __init__(
        self,
        provider: ProviderConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.provider = provider
        self.client = http_client or httpx.AsyncClient(
            base_url=provider.base_url,
            timeout=httpx.Timeout(
                connect=provider.connect_timeout,
                read=provider.read_timeout,
                write=provider.write_timeout,
                pool=provider.pool_timeout,
            ),
        )

    def _default_headers(self) -> dict[str, str]:
        headers = {
            "content-type": "application/json",
            "accept": "text/event-stream",
            "x-api-key": self.provider.api_key,
        }
        headers.update(self.provider.extra_headers)
        return headers

    def build_payload(
        self, request: ChatRequest, *, stream: bool = True
    ) -> dict[str, Any]:
        """Full JSON body sent for ``request``, including model and stream flag."""
        payload = request.to_payload()
        if self.provider.version_placement is VersionPlacement.HEADER:
            payload.pop("anthropic_version", None)
        payload["model"] = self.provider.model
        payload["stream"] = stream
        return payload

    def _request_headers(self, request: ChatRequest) -> dict[str, str]:
        headers = self._default_headers()
        if self.provider.version_placement is VersionPlacement.HEADER:
            headers["anthropic-version"] = request.anthropic_version
        return headers

    def _error_context(self) -> dict[str, str]:
        return {"provider": self.provider.name, "model": self.provider.model}

    async def stream_frames(
        self, request: ChatRequest
    ) -> AsyncGenerator[bytes]:
        """
        Open a streaming call and yield its frames in arrival order.

        Raises:
            ProviderError: Connection failure or non-200 response.
            StreamingError: Unexpected content type or failure mid-stream.
        """
        payload = self.build_payload(request)
        frame_count = 0

        try:
            async with self.client.stream(
                "POST",
                self.provider.endpoint,
                json=payload,
                headers=self._request_headers(request),
            ) as response:
                if response.status_code != HTTP_OK:
                    error_text = (await response.aread()).decode(
                        "utf-8", errors="replace"
                    )
                    raise ProviderError(
                        f"Streaming API error {response.status_code}: "
                        f"{error_text}",
                        status_code=response.status_code,
                        response_data={"body": error_text},
                        **self._error_context(),
                    )

                content_type = response.headers.get("content-type", "")
                if not any(t in content_type for t in EXPECTED_CONTENT_TYPES):
                    raise StreamingError(
                        f"Expected streaming response, got "
                        f"content-type: {content_type}",
                        **self._error_context(),
                    )

                reader = SSEFrameReader()
                async for frame in reader.iter_frames(response.aiter_lines()):
                    frame_count += 1
                    yield frame

        except LLMError:
            raise
        except httpx.TimeoutException as e:
            logger.debug(f"Timeout during streaming after {frame_count} frames: {e}")
            raise StreamingError(
                f"Stream timeout: {e!s}", **self._error_context()
            ) from e
        except httpx.StreamError as e:
            logger.debug(f"Stream error after {frame_count} frames: {e}")
            raise StreamingError(
                f"Stream error: {e!s}", **self._error_context()
            ) from e
        except httpx.HTTPError as e:
            logger.debug(f"HTTP error during streaming: {e}")
            raise ProviderError(
                f"HTTP error: {e!s}", **self._error_context()
            ) from e

    async def complete(self, request: ChatRequest) -> FinalizedResponse:
        """
        Make a non-streaming call and return the whole reply.

        Raises:
            ProviderError: Connection failure, non-200 response or a body
                that is not a message object.
            StreamingError: Timeout while waiting for the reply.
        """
        payload = self.build_payload(request, stream=False)

        try:
            response = await self.client.post(
                self.provider.endpoint,
                json=payload,
                headers={
                    **self._request_headers(request),
                    "accept": "application/json",
                },
            )
        except httpx.TimeoutException as e:
            logger.debug(f"Timeout waiting for reply: {e}")
            raise StreamingError(
                f"Request timeout: {e!s}", **self._error_context()
            ) from e
        except httpx.HTTPError as e:
            logger.debug(f"HTTP error during request: {e}")
            raise ProviderError(
                f"HTTP error: {e!s}", **self._error_context()
            ) from e

        if response.status_code != HTTP_OK:
            raise ProviderError(
                f"API error {response.status_code}: {response.text}",
                status_code=response.status_code,
                response_data={"body": response.text},
                **self._error_context(),
            )

        try:
            data = response.json()
            if not isinstance(data, dict):
                raise TypeError(f"expected JSON object, got {type(data).__name__}")
            return FinalizedResponse.from_message(data)
        except (ValueError, TypeError, AttributeError) as e:
            raise ProviderError(
                f"Malformed response body: {e}",
                response_data={"body": response.text},
                **self._error_context(),
            ) from e

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> StreamingLLMClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
