"""Replay a saved model response as a fragmented stream."""

from __future__ import annotations

from collections.abc import Iterator

from file_stream.sources.base import PromptRequest


def iter_chunks(text: str, chunk_size: int) -> Iterator[str]:
    """Split `text` into consecutive fragments of at most `chunk_size` characters."""

    if chunk_size <= 0:
        raise ValueError("chunk_size must be a positive integer.")
    for start in range(0, len(text), chunk_size):
        yield text[start : start + chunk_size]


class ReplaySource:
    """Prompt source that ignores the prompt and replays fixed text."""

    def __init__(self, text: str, *, chunk_size: int = 64) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be a positive integer.")
        self.text = text
        self.chunk_size = chunk_size

    def stream(self, request: PromptRequest) -> Iterator[str]:  # noqa: ARG002
        return iter_chunks(self.text, self.chunk_size)
