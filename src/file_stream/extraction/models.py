"""Record types produced by the streaming extractor."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class UnterminatedPolicy(str, Enum):
    """What to do with a record still open when the stream ends."""

    DISCARD = "discard"
    REPORT = "report"
    FLUSH = "flush"


@dataclass(frozen=True, slots=True)
class Record:
    """One `<file path="...">content</file>` unit recognized in the stream.

    `path` is kept as captured (trimmed, not normalized); `content` is trimmed
    of surrounding whitespace.
    """

    path: str
    content: str
    description: str | None = None


@dataclass(frozen=True, slots=True)
class RecordStart:
    """An opening `<file>` tag whose content has started to arrive."""

    path: str
    description: str | None = None


@dataclass(frozen=True, slots=True)
class Message:
    """Trimmed text of a `<message>...</message>` note addressed to the user."""

    text: str


Token = Record | RecordStart | Message
