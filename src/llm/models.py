"""
Core LLM models for requests, transcripts and finalized responses.

This module provides the foundational types for a chat exchange:
- Conversation turns and their content blocks (pydantic, immutable)
- The request body sent to the inference endpoint
- The finalized response built from a completed stream
- Provider configuration
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(Enum):
    """Roles a conversation turn can carry."""
    USER = "user"
    ASSISTANT = "assistant"


class VersionPlacement(Enum):
    """Where the protocol version string travels on the wire."""
    BODY = "body"
    HEADER = "header"


# --------------------------------------------------------------------------- #
# Conversation turns                                                          #
# --------------------------------------------------------------------------- #


class TextBlock(BaseModel):
    """Plain text content block."""
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ImageSource(BaseModel):
    """Base64 encoded image payload."""
    model_config = ConfigDict(frozen=True)

    type: Literal["base64"] = "base64"
    media_type: str = "image/jpeg"
    data: str


class ImageBlock(BaseModel):
    """Image content block."""
    model_config = ConfigDict(frozen=True)

    type: Literal["image"] = "image"
    source: ImageSource


ContentBlock = Annotated[TextBlock | ImageBlock, Field(discriminator="type")]


class Turn(BaseModel):
    """
    One role-tagged message of the conversation.

    Turns are frozen: once created they are only ever appended to a
    transcript, never edited.
    """
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: tuple[ContentBlock, ...]

    @classmethod
    def user_text(cls, text: str) -> Turn:
        return cls(role=MessageRole.USER.value, content=(TextBlock(text=text),))

    @classmethod
    def assistant_text(cls, text: str) -> Turn:
        return cls(
            role=MessageRole.ASSISTANT.value, content=(TextBlock(text=text),)
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "role": self.role,
            "content": [block.model_dump() for block in self.content],
        }


class Transcript:
    """Ordered, append-only list of turns exchanged so far."""

    def __init__(self) -> None:
        self._turns: list[Turn] = []

    def append(self, turn: Turn) -> None:
        self._turns.append(turn)

    def snapshot(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self):
        return iter(self.snapshot())


# --------------------------------------------------------------------------- #
# Request / response                                                          #
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class ChatRequest:
    """Request body for a streaming inference call."""
    anthropic_version: str
    max_tokens: int
    messages: tuple[Turn, ...]
    system: str | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    stop_sequences: tuple[str, ...] | None = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the JSON body, leaving out unset optional fields."""
        payload: dict[str, Any] = {
            "anthropic_version": self.anthropic_version,
            "max_tokens": self.max_tokens,
            "messages": [turn.to_payload() for turn in self.messages],
        }
        optional = {
            "system": self.system,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "top_k": self.top_k,
            "stop_sequences": (
                list(self.stop_sequences) if self.stop_sequences else None
            ),
        }
        payload.update({k: v for k, v in optional.items() if v is not None})
        return payload


@dataclass(frozen=True)
class TokenUsage:
    """Token usage statistics."""
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class FinalizedResponse:
    """Complete response, reconstructed from a finished stream or read whole."""
    id: str
    text: str
    stop_reason: str | None
    usage: TokenUsage
    model: str | None = None
    role: Literal["assistant"] = "assistant"
    type: Literal["message"] = "message"

    @classmethod
    def from_message(cls, data: dict[str, Any]) -> FinalizedResponse:
        """Build from a complete message body of a non-streaming call."""
        usage = data.get("usage") or {}
        text = "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if block.get("type") == "text"
        )
        return cls(
            id=data.get("id") or "",
            text=text,
            stop_reason=data.get("stop_reason"),
            usage=TokenUsage(
                input_tokens=int(usage.get("input_tokens", 0)),
                output_tokens=int(usage.get("output_tokens", 0)),
            ),
            model=data.get("model"),
        )

    @property
    def content(self) -> list[TextBlock]:
        return [TextBlock(text=self.text)]

    def to_turn(self) -> Turn:
        """Assistant turn carrying this response's text."""
        return Turn.assistant_text(self.text)


@dataclass(frozen=True)
class ProviderConfig:
    """Provider configuration."""
    name: str
    base_url: str
    model: str
    api_key: str
    endpoint: str = "/messages"
    version_placement: VersionPlacement = VersionPlacement.HEADER

    # Connection settings
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    write_timeout: float = 10.0
    pool_timeout: float = 10.0

    extra_headers: dict[str, str] = field(default_factory=dict)
