"""
Streaming functionality for LLM clients.

This package contains:
- SSE framing of the HTTP response body
- Frame decoding into typed stream events
- Aggregation of events into a finalized response
"""

from __future__ import annotations

from .models import (
    ContentDelta,
    MessageDelta,
    MessageStart,
    StreamEvent,
    StreamEventType,
    StreamingStats,
    UnknownEvent,
)
from .parser import SSEFrameReader, StreamAggregator, decode_frame, decode_frames

__all__ = [
    "ContentDelta",
    "MessageDelta",
    "MessageStart",
    "SSEFrameReader",
    "StreamAggregator",
    "StreamEvent",
    "StreamEventType",
    "StreamingStats",
    "UnknownEvent",
    "decode_frame",
    "decode_frames",
]
