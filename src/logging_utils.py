"""
Centralized logging and error classification utilities.

This module provides decorators and helper functions to standardize logging
around streaming chat operations, so that failures are reported with the same
structured context everywhere.

Features:
- Structured logging with contextual information
- Error category classification for stream and transport failures
- Performance timing for async operations
"""

from __future__ import annotations

import functools
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from src.llm.exceptions import (
    FrameDecodeError,
    ImageLoadError,
    ProviderError,
    StreamingError,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)


class StreamErrorHandler:
    """Classification of chat failures for structured logging."""

    @staticmethod
    def classify_error(error: BaseException) -> str:
        """
        Classify an error into a logging category.

        Args:
            error: The exception to classify

        Returns:
            Category name such as ``decode_error`` or ``timeout_error``
        """
        if isinstance(error, FrameDecodeError):
            return "decode_error"
        if isinstance(error, ImageLoadError):
            return "image_error"
        if isinstance(error, ProviderError):
            return "provider_error"
        if isinstance(error, StreamingError):
            return "streaming_error"
        if isinstance(error, ValidationError):
            return "validation_error"
        if isinstance(error, TimeoutError | httpx.TimeoutException):
            return "timeout_error"
        if isinstance(error, ConnectionError | OSError | httpx.TransportError):
            return "connection_error"
        if isinstance(error, ValueError | TypeError):
            return "parameter_error"
        return "unknown_error"

    @staticmethod
    def describe(error: BaseException, operation: str) -> dict[str, Any]:
        """Structured fields describing a failed operation."""
        fields: dict[str, Any] = {
            "operation": operation,
            "error_type": type(error).__name__,
            "error_category": StreamErrorHandler.classify_error(error),
            "error_message": str(error),
        }
        status_code = getattr(error, "status_code", None)
        if status_code is not None:
            fields["status_code"] = status_code
        return fields


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


@asynccontextmanager
async def operation_context(
    operation: str, *, context: dict[str, Any] | None = None
) -> AsyncIterator[None]:
    """
    Log the duration of ``operation``, and its failure if the block raises.

    Failures are logged once here and re-raised unchanged.
    """
    operation_logger = logger.bind(operation=operation, **(context or {}))
    operation_logger.debug("Operation started")
    started = time.perf_counter()

    try:
        yield
    except Exception as e:
        operation_logger.error(
            "Operation failed",
            duration_ms=_elapsed_ms(started),
            **StreamErrorHandler.describe(e, operation),
        )
        raise

    operation_logger.debug("Operation finished", duration_ms=_elapsed_ms(started))


def log_operation(
    operation: str, *, context: dict[str, Any] | None = None
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """Decorator running an async function inside ``operation_context``."""
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            async with operation_context(
                operation, context={"function": func.__name__, **(context or {})}
            ):
                return await func(*args, **kwargs)

        return wrapper
    return decorator
