"""Controllers for file-stream CLI commands."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from file_stream.config import Settings
from file_stream.extraction import UnterminatedPolicy
from file_stream.prompts import build_system_prompt
from file_stream.sandbox import SandboxedWriter
from file_stream.session import (
    SessionAbortedError,
    SessionCancelledError,
    SessionCoordinator,
    SessionEvent,
    SessionEventKind,
    SessionResult,
    SessionStatus,
)
from file_stream.sources import (
    CredentialsError,
    GatewaySource,
    PromptRequest,
    ReplaySource,
    load_token,
)

logger = logging.getLogger(__name__)

_PROGRESS_MARKS = {
    SessionEventKind.RECORD_STARTED: "writing",
    SessionEventKind.RECORD_WRITTEN: "wrote",
    SessionEventKind.RECORD_FAILED: "failed",
    SessionEventKind.RECORD_UNTERMINATED: "unterminated",
    SessionEventKind.MESSAGE: "message",
}


@dataclass(slots=True)
class ExtractCommand:
    """CLI input for replaying a saved response."""

    text: str
    base_dir: Path | None
    root_prefix: str | None
    chunk_size: int | None
    unterminated_policy: str | None
    output_format: str = "text"


@dataclass(slots=True)
class PromptCommand:
    """CLI input for streaming a fresh completion."""

    prompt: str
    base_dir: Path | None
    root_prefix: str | None
    credentials_path: Path | None
    model: str | None
    unterminated_policy: str | None
    context_files: tuple[str, ...] = ()
    read_only_files: tuple[str, ...] = ()
    echo: bool = False
    output_format: str = "text"


@dataclass(slots=True)
class SessionCommandResult:
    """Session report to render in CLI."""

    lines: list[str]
    success: bool


class FileStreamCliController:
    """Builds sessions from settings and renders their results."""

    def __init__(self, progress: Callable[[str], None] | None = None) -> None:
        self._progress = progress

    def extract(self, command: ExtractCommand) -> SessionCommandResult:
        try:
            settings = _settings(
                base_dir=command.base_dir,
                root_prefix=command.root_prefix,
                unterminated_policy=command.unterminated_policy,
            )
            if command.chunk_size is not None:
                settings.extraction.replay_chunk_size = command.chunk_size
            settings.validate()
        except ValueError as error:
            return SessionCommandResult(lines=[f"Configuration error: {error}"], success=False)

        source = ReplaySource(command.text, chunk_size=settings.extraction.replay_chunk_size)
        result = self._run(
            settings,
            lambda coordinator: coordinator.run_prompt(source, PromptRequest("", "")),
            show_progress=command.output_format == "text",
        )
        return _render(result, output_format=command.output_format, echo=False)

    def prompt(self, command: PromptCommand) -> SessionCommandResult:
        try:
            settings = _settings(
                base_dir=command.base_dir,
                root_prefix=command.root_prefix,
                unterminated_policy=command.unterminated_policy,
            )
            if command.credentials_path is not None:
                settings.gateway.credentials_path = command.credentials_path
            if command.model:
                settings.gateway.model = command.model
            settings.validate_for_gateway()
        except ValueError as error:
            return SessionCommandResult(lines=[f"Configuration error: {error}"], success=False)

        try:
            token = load_token(settings.gateway.credentials_path.expanduser())
        except CredentialsError as error:
            return SessionCommandResult(lines=[str(error)], success=False)

        try:
            context = _read_context_files(settings, command.context_files)
        except (OSError, UnicodeDecodeError) as error:
            return SessionCommandResult(
                lines=[f"Cannot read context file: {error}"],
                success=False,
            )

        request = PromptRequest(
            system_prompt=build_system_prompt(
                settings.sandbox.root_prefix,
                files=context,
                read_only=command.read_only_files,
            ),
            user_prompt=command.prompt,
        )
        with GatewaySource(settings.gateway, token=token) as source:
            result = self._run(
                settings,
                lambda coordinator: coordinator.run_prompt(source, request),
                show_progress=command.output_format == "text",
            )
        return _render(result, output_format=command.output_format, echo=command.echo)

    def _run(
        self,
        settings: Settings,
        session: Callable[[SessionCoordinator], SessionResult],
        *,
        show_progress: bool,
    ) -> SessionResult:
        coordinator = SessionCoordinator(
            SandboxedWriter(settings.sandbox.base_dir, settings.sandbox.root_prefix),
            unterminated_policy=settings.extraction.unterminated_policy,
            listener=self._on_event if show_progress and self._progress is not None else None,
        )
        try:
            return session(coordinator)
        except SessionAbortedError as error:
            logger.error("%s", error)
            return SessionResult(
                report=error.result.report,
                raw_text=error.result.raw_text,
                stream_error=str(error),
            )
        except SessionCancelledError as error:
            logger.warning("%s", error)
            return SessionResult(
                report=error.result.report,
                raw_text=error.result.raw_text,
                stream_error="cancelled by user",
            )

    def _on_event(self, event: SessionEvent) -> None:
        mark = _PROGRESS_MARKS.get(event.kind)
        if mark is None or self._progress is None:
            return
        subject = event.path if event.path is not None else event.detail
        self._progress(f"  {mark}: {subject}")


def _settings(
    *,
    base_dir: Path | None,
    root_prefix: str | None,
    unterminated_policy: str | None,
) -> Settings:
    settings = Settings.from_env(base_dir=base_dir)
    if root_prefix is not None:
        settings.sandbox.root_prefix = root_prefix
    if unterminated_policy is not None:
        settings.extraction.unterminated_policy = UnterminatedPolicy(unterminated_policy)
    return settings


def _read_context_files(settings: Settings, paths: tuple[str, ...]) -> dict[str, str]:
    context: dict[str, str] = {}
    for path in paths:
        context[path] = (settings.sandbox.base_dir / path).read_text(encoding="utf-8")
    return context


def _render(result: SessionResult, *, output_format: str, echo: bool) -> SessionCommandResult:
    success = result.status is not SessionStatus.STREAM_FAILED
    if output_format == "json":
        payload = result.to_dict()
        if echo:
            payload["rawText"] = result.raw_text
        return SessionCommandResult(
            lines=[json.dumps(payload, ensure_ascii=False, indent=2)],
            success=success,
        )

    report = result.report
    lines: list[str] = []
    if echo and result.raw_text:
        lines.extend([result.raw_text, ""])
    lines.append(
        "Session: "
        f"status={result.status.value} records={report.total_files} "
        f"written={len(report.written)} errors={len(report.errors)}",
    )
    lines.extend(f"  + {path}" for path in report.written)
    lines.extend(f"  ! {error}" for error in report.errors)
    lines.extend(f"  > {message}" for message in report.messages)
    if result.stream_error is not None:
        lines.append(f"Stream failed: {result.stream_error}")
    elif result.status is SessionStatus.NO_RECORDS:
        lines.append("No file records found in the response.")
    return SessionCommandResult(lines=lines, success=success)
