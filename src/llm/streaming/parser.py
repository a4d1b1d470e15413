"""
Response stream decoding: SSE framing, frame decoding and aggregation.
"""

from __future__ import annotations

import inspect
import json
from collections.abc import AsyncGenerator, AsyncIterable, Awaitable, Callable
from typing import Any

import structlog

from ..exceptions import FrameDecodeError
from ..models import FinalizedResponse
from .models import (
    AccumulatorState,
    ContentDelta,
    MessageDelta,
    MessageStart,
    StreamEvent,
    StreamEventType,
    StreamingStats,
    UnknownEvent,
)

logger = structlog.get_logger(__name__)

TextSink = Callable[[str], Awaitable[None] | None]

# SSE fields that carry no frame data
IGNORED_SSE_FIELDS = ("event", "id", "retry")


class SSEFrameReader:
    """
    Cut a ``text/event-stream`` body into frames.

    Each frame is the ``data`` payload of one server-sent event, encoded as
    UTF-8 bytes. Multi-line data fields are joined with ``\\n``; a blank line
    terminates the event and a pending event is flushed at end of stream.
    """

    def __init__(self) -> None:
        self._data_lines: list[str] = []

    def feed_line(self, raw_line: str) -> bytes | None:
        """Consume one line; return a frame when the line completes an event."""
        line = raw_line.rstrip("\r\n")

        if not line:
            return self.flush()

        if line.startswith(":"):
            return None

        name, _, value = line.partition(":")
        value = value.removeprefix(" ")

        if name == "data":
            self._data_lines.append(value)
        elif name not in IGNORED_SSE_FIELDS:
            logger.debug("Ignoring unexpected SSE field", field=name)
        return None

    def flush(self) -> bytes | None:
        if not self._data_lines:
            return None
        frame = "\n".join(self._data_lines).encode("utf-8")
        self._data_lines = []
        return frame

    async def iter_frames(
        self, lines: AsyncIterable[str]
    ) -> AsyncGenerator[bytes]:
        async for line in lines:
            if (frame := self.feed_line(line)) is not None:
                yield frame
        if (frame := self.flush()) is not None:
            yield frame


# --------------------------------------------------------------------------- #
# Frame decoding                                                              #
# --------------------------------------------------------------------------- #


def _field(
    container: dict[str, Any], key: str, expected: type, default: Any, frame: bytes
) -> Any:
    """Read an optional nested field, failing on a present value of wrong type."""
    value = container.get(key)
    if value is None:
        return default
    # bool is an int subclass but never a valid token count
    if not isinstance(value, expected) or (
        expected is int and isinstance(value, bool)
    ):
        raise FrameDecodeError(
            f"Malformed stream frame: '{key}' should be {expected.__name__}, "
            f"got {type(value).__name__}",
            frame=frame,
        )
    return value


def _object(
    container: dict[str, Any], key: str, frame: bytes
) -> dict[str, Any]:
    return _field(container, key, dict, {}, frame)


def _decode_message_start(data: dict[str, Any], frame: bytes) -> MessageStart:
    message = _object(data, "message", frame)
    usage = _object(message, "usage", frame)
    return MessageStart(
        id=_field(message, "id", str, "", frame),
        input_tokens=_field(usage, "input_tokens", int, 0, frame),
        model=_field(message, "model", str, None, frame),
        role=_field(message, "role", str, None, frame),
    )


def _decode_content_delta(data: dict[str, Any], frame: bytes) -> ContentDelta:
    delta = _object(data, "delta", frame)
    return ContentDelta(text=_field(delta, "text", str, "", frame))


def _decode_message_delta(data: dict[str, Any], frame: bytes) -> MessageDelta:
    delta = _object(data, "delta", frame)
    usage = _object(data, "usage", frame)
    return MessageDelta(
        stop_reason=_field(delta, "stop_reason", str, None, frame),
        output_tokens=_field(usage, "output_tokens", int, 0, frame),
    )


_DECODERS: dict[str, Callable[[dict[str, Any], bytes], StreamEvent]] = {
    StreamEventType.MESSAGE_START.value: _decode_message_start,
    StreamEventType.CONTENT_BLOCK_DELTA.value: _decode_content_delta,
    StreamEventType.MESSAGE_DELTA.value: _decode_message_delta,
}


def decode_frame(frame: bytes) -> StreamEvent:
    """
    Decode one complete frame into a typed stream event.

    Args:
        frame: Raw bytes of exactly one JSON encoded event

    Returns:
        The event variant selected by the frame's ``type`` field. Frames with
        an unrecognised ``type`` decode to ``UnknownEvent``.

    Raises:
        FrameDecodeError: If the frame is not a JSON object or a recognised
            event carries nested fields of the wrong type.
    """
    try:
        data = json.loads(frame)
    except (ValueError, RecursionError) as e:
        raise FrameDecodeError(
            f"Malformed stream frame: {e}", frame=frame
        ) from e

    if not isinstance(data, dict):
        raise FrameDecodeError(
            f"Malformed stream frame: expected JSON object, "
            f"got {type(data).__name__}",
            frame=frame,
        )

    tag = data.get("type")
    if not isinstance(tag, str):
        tag = ""

    decoder = _DECODERS.get(tag)
    if decoder is None:
        return UnknownEvent(tag=tag)
    return decoder(data, frame)


async def decode_frames(
    frames: AsyncIterable[bytes],
) -> AsyncGenerator[StreamEvent]:
    """Lazily decode a frame source, preserving arrival order."""
    async for frame in frames:
        yield decode_frame(frame)


# --------------------------------------------------------------------------- #
# Aggregation                                                                 #
# --------------------------------------------------------------------------- #


class StreamAggregator:
    """
    Rebuild a complete response from a stream of events.

    Each text fragment is handed to the caller's sink as soon as it arrives,
    and the finalized response is returned once the stream is exhausted. Any
    error raised while iterating aborts the run and propagates; the partial
    state is dropped.
    """

    def __init__(self) -> None:
        self.last_stats: StreamingStats | None = None

    async def run(
        self, events: AsyncIterable[StreamEvent], on_text: TextSink
    ) -> FinalizedResponse:
        state = AccumulatorState()

        try:
            async for event in events:
                state.update_timing()
                await self._apply(state, event, on_text)
        except Exception as e:
            logger.debug(
                "Stream aborted",
                error_type=type(e).__name__,
                error_message=str(e),
                events_processed=state.event_count,
            )
            raise

        response = state.finalize()
        self.last_stats = state.stats()
        logger.debug(
            "Stream completed",
            response_id=response.id,
            stop_reason=response.stop_reason,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            content_deltas=self.last_stats.content_deltas,
            unknown_events=self.last_stats.unknown_events,
            duration_s=round(self.last_stats.total_duration, 3),
        )
        return response

    async def run_frames(
        self, frames: AsyncIterable[bytes], on_text: TextSink
    ) -> FinalizedResponse:
        """Decode raw frames and aggregate them in one pass."""
        return await self.run(decode_frames(frames), on_text)

    async def _apply(
        self, state: AccumulatorState, event: StreamEvent, on_text: TextSink
    ) -> None:
        if isinstance(event, ContentDelta):
            # sink runs before the fragment is recorded
            result = on_text(event.text)
            if inspect.isawaitable(result):
                await result
            state.text_parts.append(event.text)
            state.content_deltas += 1

        elif isinstance(event, MessageStart):
            if state.seen_message_start:
                logger.debug(
                    "Ignoring repeated message_start",
                    kept_id=state.response_id,
                    ignored_id=event.id,
                )
                return
            state.seen_message_start = True
            state.response_id = event.id
            state.input_tokens = event.input_tokens
            state.model = event.model

        elif isinstance(event, MessageDelta):
            state.stop_reason = event.stop_reason
            state.output_tokens = event.output_tokens

        elif isinstance(event, UnknownEvent):
            state.unknown_events += 1
            logger.debug("Unknown stream event", tag=event.tag)
