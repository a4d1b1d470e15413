"""
Error handling for streaming LLM operations.

This module provides the error taxonomy used across the client:
- Provider/transport failures
- Stream consumption failures
- Malformed frame detection
- Image source failures
"""

from __future__ import annotations


class LLMError(Exception):
    """Base LLM error with rich context."""

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        model: str = "unknown",
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code
        self.response_data = response_data or {}


class ProviderError(LLMError):
    """Transport, connection or HTTP status errors from the provider."""
    pass


class StreamingError(LLMError):
    """Streaming-specific errors."""
    pass


class FrameDecodeError(StreamingError):
    """A stream frame could not be decoded into an event."""

    def __init__(self, message: str, frame: bytes = b"", **kwargs):
        super().__init__(message, **kwargs)
        self.frame = frame


class ImageLoadError(LLMError):
    """An image source could not be read or downloaded."""

    def __init__(self, message: str, source: str, **kwargs):
        super().__init__(message, **kwargs)
        self.source = source
