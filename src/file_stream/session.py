"""Session coordinator: stream -> extractor -> sandboxed writer -> report."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum

from file_stream.extraction import (
    Message,
    Record,
    RecordExtractor,
    RecordStart,
    Token,
    UnterminatedPolicy,
)
from file_stream.sandbox import SandboxedWriter, WriteOutcome
from file_stream.sources.base import PromptRequest, PromptSource, StreamError

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    """Coarse result of one session, for callers that render it."""

    NO_RECORDS = "no_records"
    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial_failure"
    INCOMPLETE = "incomplete"
    STREAM_FAILED = "stream_failed"


class SessionEventKind(str, Enum):
    """Progress notifications emitted while a session runs."""

    RECORD_STARTED = "record_started"
    RECORD_COMPLETED = "record_completed"
    RECORD_WRITTEN = "record_written"
    RECORD_FAILED = "record_failed"
    RECORD_UNTERMINATED = "record_unterminated"
    MESSAGE = "message"
    STREAM_FAILED = "stream_failed"


@dataclass(slots=True)
class SessionEvent:
    """One progress notification."""

    kind: SessionEventKind
    path: str | None = None
    detail: str | None = None


SessionListener = Callable[[SessionEvent], None]


@dataclass(slots=True)
class SessionReport:
    """Accumulated write results of one session."""

    written: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    outcomes: list[WriteOutcome] = field(default_factory=list)
    unterminated: list[str] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    total_files: int = 0

    @property
    def failed(self) -> list[dict[str, str]]:
        return [
            {"path": outcome.path, "reason": outcome.reason or ""}
            for outcome in self.outcomes
            if not outcome.is_written
        ]

    def to_dict(self) -> dict[str, object]:
        """Serialize in the `{written, errors, totalFiles}` shape."""

        return {
            "written": list(self.written),
            "errors": list(self.errors),
            "totalFiles": self.total_files,
        }


@dataclass(slots=True)
class SessionResult:
    """Final report plus the raw streamed text."""

    report: SessionReport
    raw_text: str
    stream_error: str | None = None

    @property
    def status(self) -> SessionStatus:
        if self.stream_error is not None:
            return SessionStatus.STREAM_FAILED
        if self.report.failed:
            return SessionStatus.PARTIAL_FAILURE
        if self.report.unterminated:
            return SessionStatus.INCOMPLETE
        if self.report.total_files == 0:
            return SessionStatus.NO_RECORDS
        return SessionStatus.COMPLETED

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status.value,
            "fileWriteResults": self.report.to_dict(),
            "streamError": self.stream_error,
            "rawTextChars": len(self.raw_text),
            "messages": list(self.report.messages),
        }


class SessionAbortedError(RuntimeError):
    """The stream raised something other than a `StreamError`.

    The partial result gathered before the failure is kept on `result`.
    """

    def __init__(self, message: str, *, result: SessionResult) -> None:
        super().__init__(message)
        self.result = result


class SessionCancelledError(KeyboardInterrupt):
    """The session was interrupted; completed records were still written.

    Subclasses `KeyboardInterrupt` so cancellation keeps propagating, while
    `result` keeps the partial report.
    """

    def __init__(self, *, result: SessionResult) -> None:
        super().__init__("Session cancelled")
        self.result = result


class SessionCoordinator:
    """Drives one stream through extraction and writing.

    A coordinator can run many sessions; every `run()` gets a fresh extractor
    and report, so sessions never share buffered text.
    """

    def __init__(
        self,
        writer: SandboxedWriter,
        *,
        unterminated_policy: UnterminatedPolicy = UnterminatedPolicy.DISCARD,
        listener: SessionListener | None = None,
    ) -> None:
        self.writer = writer
        self.unterminated_policy = unterminated_policy
        self.listener = listener

    def run_prompt(self, source: PromptSource, request: PromptRequest) -> SessionResult:
        """Stream `request` from `source` and process it as one session."""

        return self.run(source.stream(request))

    def run(self, fragments: Iterable[str]) -> SessionResult:
        """Consume `fragments` to the end and return the finished session result.

        Raises `SessionAbortedError` when the stream fails with anything but a
        `StreamError`, and `SessionCancelledError` on `KeyboardInterrupt`; both
        carry the partial result.
        """

        extractor = RecordExtractor(unterminated_policy=self.unterminated_policy)
        report = SessionReport()
        raw_parts: list[str] = []
        stream_error: str | None = None
        iterator = iter(fragments)
        finished = False

        try:
            while True:
                try:
                    fragment = next(iterator)
                except StopIteration:
                    break
                except StreamError as error:
                    stream_error = str(error)
                    logger.warning("Stream failed after %d chars: %s", _size(raw_parts), error)
                    self._emit(SessionEventKind.STREAM_FAILED, detail=stream_error)
                    break
                except Exception as error:
                    self._finish(extractor, report)
                    finished = True
                    result = SessionResult(report=report, raw_text="".join(raw_parts))
                    raise SessionAbortedError(f"Stream aborted: {error}", result=result) from error
                raw_parts.append(fragment)
                self._process(extractor.feed(fragment), report)
        except KeyboardInterrupt as error:
            if not finished:
                self._finish(extractor, report)
                finished = True
            logger.warning("Session cancelled after %d chars", _size(raw_parts))
            result = SessionResult(report=report, raw_text="".join(raw_parts))
            raise SessionCancelledError(result=result) from error
        finally:
            if not finished:
                self._finish(extractor, report)
            close = getattr(iterator, "close", None)
            if callable(close):
                close()

        logger.info(
            "Session finished: %d records, %d written, %d errors",
            report.total_files,
            len(report.written),
            len(report.errors),
        )
        return SessionResult(
            report=report,
            raw_text="".join(raw_parts),
            stream_error=stream_error,
        )

    def _finish(self, extractor: RecordExtractor, report: SessionReport) -> None:
        self._process(extractor.finalize(), report)
        partial = extractor.unterminated
        if partial is None or self.unterminated_policy is UnterminatedPolicy.FLUSH:
            return
        self._emit(SessionEventKind.RECORD_UNTERMINATED, path=partial.path)
        if self.unterminated_policy is UnterminatedPolicy.REPORT:
            report.unterminated.append(partial.path)
            report.errors.append(
                f"Unterminated record {partial.path}: stream ended before </file>",
            )

    def _process(self, tokens: Iterable[Token], report: SessionReport) -> None:
        for token in tokens:
            if isinstance(token, RecordStart):
                self._emit(
                    SessionEventKind.RECORD_STARTED,
                    path=token.path,
                    detail=token.description,
                )
            elif isinstance(token, Message):
                report.messages.append(token.text)
                self._emit(SessionEventKind.MESSAGE, detail=token.text)
            else:
                self._write(token, report)

    def _write(self, record: Record, report: SessionReport) -> None:
        report.total_files += 1
        self._emit(
            SessionEventKind.RECORD_COMPLETED,
            path=record.path,
            detail=record.description,
        )
        outcome = self.writer.write(record.path, record.content)
        report.outcomes.append(outcome)
        if outcome.is_written:
            report.written.append(outcome.path)
            self._emit(SessionEventKind.RECORD_WRITTEN, path=outcome.path)
        else:
            message = f"Failed to write {outcome.path}: {outcome.reason}"
            report.errors.append(message)
            self._emit(SessionEventKind.RECORD_FAILED, path=outcome.path, detail=message)

    def _emit(
        self,
        kind: SessionEventKind,
        *,
        path: str | None = None,
        detail: str | None = None,
    ) -> None:
        if self.listener is not None:
            self.listener(SessionEvent(kind=kind, path=path, detail=detail))


def _size(parts: list[str]) -> int:
    return sum(len(part) for part in parts)
