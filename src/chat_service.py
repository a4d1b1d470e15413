"""
Chat Service for the streaming chat client.

This module handles the business logic of a chat session:
- Transcript ownership (append-only, one user + one assistant turn per exchange)
- Request construction from the transcript snapshot
- Driving the streaming call and the stream aggregator
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.llm.client import StreamingLLMClient
from src.llm.models import ChatRequest, FinalizedResponse, Transcript, Turn
from src.llm.streaming.parser import StreamAggregator, TextSink
from src.logging_utils import log_operation

logger = logging.getLogger(__name__)


class RequestDefaults(BaseModel):
    """Per-request settings applied to every turn of the session."""
    model_config = ConfigDict(frozen=True)

    anthropic_version: str
    max_tokens: int = Field(gt=0)
    system: str | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    stop_sequences: tuple[str, ...] | None = None


class ChatService:
    """
    Conversation orchestrator.

    1. Takes the user's turn
    2. Sends it, with everything said so far, to the model
    3. Streams the reply to the caller's sink
    4. Records both turns once the reply is complete
    """

    def __init__(
        self,
        llm_client: StreamingLLMClient,
        request_defaults: RequestDefaults,
        *,
        on_payload: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.llm_client = llm_client
        self.request_defaults = request_defaults
        self.on_payload = on_payload
        self.transcript = Transcript()
        self.aggregator = StreamAggregator()
        self._turn_number = 0

    def build_request(self, turn: Turn) -> ChatRequest:
        """Request for the transcript so far followed by ``turn``."""
        return ChatRequest(
            messages=(*self.transcript.snapshot(), turn),
            **self.request_defaults.model_dump(),
        )

    @log_operation("send_turn")
    async def send(self, turn: Turn, on_text: TextSink) -> FinalizedResponse:
        """
        Send one user turn and stream the reply.

        Args:
            turn: The user's turn
            on_text: Sink called with every text fragment, in arrival order

        Returns:
            The finalized response for this turn

        Raises:
            LLMError: Transport or decode failure. Nothing is appended to the
                transcript, so the session can continue with a new turn.
        """
        self._turn_number += 1
        request = self.build_request(turn)

        if self.on_payload is not None:
            self.on_payload(self.llm_client.build_payload(request))

        async with contextlib.aclosing(
            self.llm_client.stream_frames(request)
        ) as frames:
            response = await self.aggregator.run_frames(frames, on_text)

        self._record(turn, response)
        return response

    @log_operation("complete_turn")
    async def complete(self, turn: Turn) -> FinalizedResponse:
        """
        Send one user turn and wait for the whole reply.

        The transcript is only extended once the reply has arrived, exactly
        as for ``send``.
        """
        self._turn_number += 1
        request = self.build_request(turn)

        if self.on_payload is not None:
            self.on_payload(self.llm_client.build_payload(request, stream=False))

        response = await self.llm_client.complete(request)
        self._record(turn, response)
        return response

    def _record(self, turn: Turn, response: FinalizedResponse) -> None:
        logger.info(
            f"Turn {self._turn_number} completed: id={response.id} "
            f"stop_reason={response.stop_reason} "
            f"input_tokens={response.usage.input_tokens} "
            f"output_tokens={response.usage.output_tokens} "
            f"history_turns={len(self.transcript)}"
        )

        self.transcript.append(turn)
        self.transcript.append(response.to_turn())
