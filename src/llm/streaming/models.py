"""
Streaming-specific dataclasses for response stream decoding.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum

from ..models import FinalizedResponse, TokenUsage


class StreamEventType(Enum):
    """Discriminant values recognised on the wire."""
    MESSAGE_START = "message_start"
    CONTENT_BLOCK_DELTA = "content_block_delta"
    MESSAGE_DELTA = "message_delta"


@dataclass(frozen=True)
class MessageStart:
    """Opening event carrying the response identifier and prompt usage."""
    id: str
    input_tokens: int
    model: str | None = None
    role: str | None = None


@dataclass(frozen=True)
class ContentDelta:
    """Incremental fragment of generated text."""
    text: str


@dataclass(frozen=True)
class MessageDelta:
    """Closing metadata: why generation stopped and how much it produced."""
    stop_reason: str | None
    output_tokens: int


@dataclass(frozen=True)
class UnknownEvent:
    """Any event whose discriminant is not recognised."""
    tag: str


StreamEvent = MessageStart | ContentDelta | MessageDelta | UnknownEvent


@dataclass
class AccumulatorState:
    """Mutable state owned by a single aggregation run."""
    response_id: str = ""
    model: str | None = None
    text_parts: list[str] = field(default_factory=list)
    stop_reason: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0

    seen_message_start: bool = False
    event_count: int = 0
    content_deltas: int = 0
    unknown_events: int = 0
    first_event_time: float | None = None
    last_event_time: float | None = None

    def update_timing(self, timestamp: float | None = None) -> None:
        """Update timing information for latency tracking."""
        timestamp = time.monotonic() if timestamp is None else timestamp
        if self.first_event_time is None:
            self.first_event_time = timestamp
        self.last_event_time = timestamp
        self.event_count += 1

    @property
    def text(self) -> str:
        return "".join(self.text_parts)

    @property
    def streaming_duration(self) -> float:
        """Calculate total streaming duration."""
        if self.first_event_time is None or self.last_event_time is None:
            return 0.0
        return self.last_event_time - self.first_event_time

    def finalize(self) -> FinalizedResponse:
        return FinalizedResponse(
            id=self.response_id,
            text=self.text,
            stop_reason=self.stop_reason,
            usage=TokenUsage(
                input_tokens=self.input_tokens,
                output_tokens=self.output_tokens,
            ),
            model=self.model,
        )

    def stats(self) -> StreamingStats:
        return StreamingStats(
            total_events=self.event_count,
            content_deltas=self.content_deltas,
            unknown_events=self.unknown_events,
            total_duration=self.streaming_duration,
        )


@dataclass(frozen=True)
class StreamingStats:
    """Statistics for a completed stream."""
    total_events: int
    content_deltas: int
    unknown_events: int
    total_duration: float
