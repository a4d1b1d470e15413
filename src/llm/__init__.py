"""
Streaming LLM integration.

This package provides:
- Type-safe turn, request and response models
- An explicitly constructed streaming HTTP client
- Incremental decoding of response streams
- A small error taxonomy for transport and decode failures
"""

from __future__ import annotations

from .client import StreamingLLMClient
from .exceptions import (
    FrameDecodeError,
    ImageLoadError,
    LLMError,
    ProviderError,
    StreamingError,
)
from .models import (
    ChatRequest,
    FinalizedResponse,
    ImageBlock,
    ImageSource,
    MessageRole,
    ProviderConfig,
    TextBlock,
    TokenUsage,
    Transcript,
    Turn,
    VersionPlacement,
)

__all__ = [
    "ChatRequest",
    "FinalizedResponse",
    "FrameDecodeError",
    "ImageBlock",
    "ImageLoadError",
    "ImageSource",
    "LLMError",
    "MessageRole",
    "ProviderConfig",
    "ProviderError",
    "StreamingError",
    "StreamingLLMClient",
    "TextBlock",
    "TokenUsage",
    "Transcript",
    "Turn",
    "VersionPlacement",
]
