"""Incremental `<file>` record tokenizer.

The extractor is fed arbitrary fragments of model output and emits each
record the moment its closing tag arrives. A cursor remembers where scanning
resumes, so every call only inspects newly appended text (plus a short overlap
for a closing tag split across fragments). Text that can no longer be part of
a record is dropped from the buffer after each call.

Accepted opening tag::

    <file path="VALUE">
    <file path="VALUE" description="TEXT">

`VALUE` is one or more characters other than `"`, taken literally. Content runs
to the first `</file>` after the opening tag; nesting is not tracked, so an
inner closing tag terminates the outer record.

`<message>TEXT</message>` outside a record is a note for the user. It is
reported as a `Message` and never written. An opening `<file>` tag inside an
unclosed message abandons the message, so notes never hide records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from file_stream.extraction.models import (
    Message,
    Record,
    RecordStart,
    Token,
    UnterminatedPolicy,
)

logger = logging.getLogger(__name__)

OPEN_TAG_NAME = "<file"
CLOSE_TAG = "</file>"
MESSAGE_OPEN_TAG = "<message>"
MESSAGE_CLOSE_TAG = "</message>"
_PATH_ATTR = 'path="'
_DESCRIPTION_ATTR = 'description="'


class _ScanState(Enum):
    OUTSIDE_TAG = "outside_tag"
    IN_OPENING_TAG = "in_opening_tag"
    IN_CONTENT = "in_content"
    IN_MESSAGE = "in_message"


class _TagScan(Enum):
    MATCH = "match"
    INCOMPLETE = "incomplete"
    MISMATCH = "mismatch"


@dataclass(slots=True)
class _OpenTag:
    path: str
    description: str | None
    end: int


class RecordExtractor:
    """Turns a fragmented text stream into completed `Record` objects.

    `observe()` returns completed records only; `feed()` also reports opening
    tags (`RecordStart`) and user notes (`Message`), all in stream order.
    One extractor serves exactly one stream. It is not thread-safe.
    """

    def __init__(
        self,
        *,
        unterminated_policy: UnterminatedPolicy = UnterminatedPolicy.DISCARD,
    ) -> None:
        self.unterminated_policy = unterminated_policy
        self.unterminated: Record | None = None
        self._buffer = ""
        self._cursor = 0
        self._state = _ScanState.OUTSIDE_TAG
        self._open_tag: _OpenTag | None = None
        self._finalized = False

    @property
    def pending_path(self) -> str | None:
        """Path of the record whose closing tag has not arrived yet."""

        if self._state is _ScanState.IN_CONTENT and self._open_tag is not None:
            return self._open_tag.path
        return None

    @property
    def buffered_chars(self) -> int:
        return len(self._buffer)

    def observe(self, fragment: str) -> list[Record]:
        """Append one fragment and return every record it completes, in order."""

        return [token for token in self.feed(fragment) if isinstance(token, Record)]

    def feed(self, fragment: str) -> list[Token]:
        """Append one fragment and return every token it completes, in order."""

        if self._finalized:
            raise RuntimeError("RecordExtractor.observe() called after finalize()")
        self._buffer += fragment
        tokens: list[Token] = []
        while self._advance(tokens):
            pass
        self._compact()
        return tokens

    def finalize(self) -> list[Record]:
        """Close the stream and apply the unterminated-record policy.

        Calling it more than once returns an empty list.
        """

        if self._finalized:
            return []
        records = self.observe("")
        self._finalized = True

        if self._state is _ScanState.IN_MESSAGE:
            logger.debug("Dropping unterminated message (%d chars)", len(self._buffer))
        elif self._state is _ScanState.IN_CONTENT and self._open_tag is not None:
            partial = Record(
                path=self._open_tag.path,
                content=self._buffer.strip(),
                description=self._open_tag.description,
            )
            self.unterminated = partial
            if self.unterminated_policy is UnterminatedPolicy.FLUSH:
                logger.info("Flushing unterminated record %s", partial.path)
                records.append(partial)
            elif self.unterminated_policy is UnterminatedPolicy.REPORT:
                logger.warning("Stream ended inside record %s", partial.path)
            else:
                logger.info(
                    "Discarding unterminated record %s (%d chars)",
                    partial.path,
                    len(partial.content),
                )

        self._buffer = ""
        self._cursor = 0
        self._open_tag = None
        self._state = _ScanState.OUTSIDE_TAG
        return records

    def _advance(self, tokens: list[Token]) -> bool:
        """Run one tokenizer step; return False when more input is needed."""

        if self._state is _ScanState.OUTSIDE_TAG:
            start = self._buffer.find("<", self._cursor)
            if start == -1:
                self._cursor = len(self._buffer)
                return False
            self._cursor = start
            self._state = _ScanState.IN_OPENING_TAG
            return True

        if self._state is _ScanState.IN_OPENING_TAG:
            return self._advance_opening_tag(tokens)
        if self._state is _ScanState.IN_MESSAGE:
            return self._advance_message(tokens)

        close_at = self._buffer.find(CLOSE_TAG, self._cursor)
        if close_at == -1:
            self._cursor = max(0, len(self._buffer) - len(CLOSE_TAG) + 1)
            return False
        open_tag = self._open_tag
        if open_tag is None:
            raise RuntimeError("RecordExtractor lost its opening tag while inside content")
        record = Record(
            path=open_tag.path,
            content=self._buffer[:close_at].strip(),
            description=open_tag.description,
        )
        tokens.append(record)
        logger.debug("Record closed: %s (%d chars)", record.path, len(record.content))
        self._buffer = self._buffer[close_at + len(CLOSE_TAG) :]
        self._cursor = 0
        self._open_tag = None
        self._state = _ScanState.OUTSIDE_TAG
        return True

    def _advance_opening_tag(self, tokens: list[Token]) -> bool:
        status, tag = _scan_open_tag(self._buffer, self._cursor)
        if status is _TagScan.MATCH and tag is not None:
            self._open_tag = tag
            self._buffer = self._buffer[tag.end :]
            self._cursor = 0
            self._state = _ScanState.IN_CONTENT
            tokens.append(RecordStart(path=tag.path, description=tag.description))
            logger.debug("Record opened: %s", tag.path)
            return True

        message_status, message_end = _expect(self._buffer, self._cursor, MESSAGE_OPEN_TAG)
        if message_status is _TagScan.MATCH:
            self._buffer = self._buffer[message_end:]
            self._cursor = 0
            self._state = _ScanState.IN_MESSAGE
            return True

        if _TagScan.INCOMPLETE in (status, message_status):
            return False
        self._cursor += 1
        self._state = _ScanState.OUTSIDE_TAG
        return True

    def _advance_message(self, tokens: list[Token]) -> bool:
        pos = self._buffer.find("<", self._cursor)
        while pos != -1:
            close_status, close_end = _expect(self._buffer, pos, MESSAGE_CLOSE_TAG)
            if close_status is _TagScan.MATCH:
                text = self._buffer[:pos].strip()
                if text:
                    tokens.append(Message(text=text))
                self._buffer = self._buffer[close_end:]
                self._cursor = 0
                self._state = _ScanState.OUTSIDE_TAG
                return True
            file_status, _ = _scan_open_tag(self._buffer, pos)
            if file_status is _TagScan.MATCH:
                logger.debug("Unclosed message interrupted by a file record")
                self._cursor = pos
                self._state = _ScanState.IN_OPENING_TAG
                return True
            if _TagScan.INCOMPLETE in (close_status, file_status):
                self._cursor = pos
                return False
            pos = self._buffer.find("<", pos + 1)
        self._cursor = len(self._buffer)
        return False

    def _compact(self) -> None:
        # Inside a record or message the buffer already starts at the content.
        if self._state in (_ScanState.IN_CONTENT, _ScanState.IN_MESSAGE):
            return
        self._buffer = self._buffer[self._cursor :]
        self._cursor = 0


def _scan_open_tag(text: str, start: int) -> tuple[_TagScan, _OpenTag | None]:
    status, pos = _expect(text, start, OPEN_TAG_NAME)
    if status is not _TagScan.MATCH:
        return status, None

    after_name = _skip_whitespace(text, pos)
    if after_name == len(text):
        return _TagScan.INCOMPLETE, None
    if after_name == pos:
        return _TagScan.MISMATCH, None

    status, pos = _expect(text, after_name, _PATH_ATTR)
    if status is not _TagScan.MATCH:
        return status, None
    quote = text.find('"', pos)
    if quote == -1:
        return _TagScan.INCOMPLETE, None
    if quote == pos:
        return _TagScan.MISMATCH, None
    path = text[pos:quote].strip()
    pos = quote + 1

    if pos == len(text):
        return _TagScan.INCOMPLETE, None
    if text[pos] == ">":
        return _TagScan.MATCH, _OpenTag(path=path, description=None, end=pos + 1)
    after_path = _skip_whitespace(text, pos)
    if after_path == pos:
        return _TagScan.MISMATCH, None
    if after_path == len(text):
        return _TagScan.INCOMPLETE, None

    status, pos = _expect(text, after_path, _DESCRIPTION_ATTR)
    if status is not _TagScan.MATCH:
        return status, None
    quote = text.find('"', pos)
    if quote == -1:
        return _TagScan.INCOMPLETE, None
    description = text[pos:quote]

    end = quote + 1
    if end == len(text):
        return _TagScan.INCOMPLETE, None
    if text[end] != ">":
        return _TagScan.MISMATCH, None
    return _TagScan.MATCH, _OpenTag(path=path, description=description, end=end + 1)


def _expect(text: str, pos: int, literal: str) -> tuple[_TagScan, int]:
    chunk = text[pos : pos + len(literal)]
    if chunk == literal:
        return _TagScan.MATCH, pos + len(literal)
    if len(chunk) < len(literal) and literal.startswith(chunk):
        return _TagScan.INCOMPLETE, pos
    return _TagScan.MISMATCH, pos


def _skip_whitespace(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos
