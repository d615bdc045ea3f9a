"""Common prompt source contracts."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Protocol


@dataclass(slots=True)
class PromptRequest:
    """System/user prompt pair sent to a streaming model."""

    system_prompt: str
    user_prompt: str


@dataclass(slots=True)
class StreamError(Exception):
    """Base upstream stream error."""

    message: str
    code: str = "stream_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class TemporaryStreamError(StreamError):
    """Stream error a caller may retry by re-issuing the prompt."""

    status_code: int | None = None
    retry_after: int | None = None


@dataclass(slots=True)
class NonRetryableStreamError(StreamError):
    """Stream error that re-issuing the same prompt will not fix."""

    status_code: int | None = None


class PromptSource(Protocol):
    """Anything that turns a prompt into an ordered sequence of text fragments."""

    def stream(self, request: PromptRequest) -> Iterator[str]:
        """Yield text fragments in arrival order."""
        raise NotImplementedError
