from __future__ import annotations

import json
from pathlib import Path

import allure
import httpx
import pytest
from click.testing import CliRunner

from file_stream import controllers
from file_stream.controllers import ExtractCommand, FileStreamCliController
from file_stream.main import file_stream
from file_stream.sources import GatewaySource, PromptRequest

pytestmark = [
    allure.epic("File Extraction"),
    allure.feature("CLI"),
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in (
        "FILE_STREAM_BASE_DIR",
        "FILE_STREAM_ROOT_PREFIX",
        "FILE_STREAM_UNTERMINATED_POLICY",
        "FILE_STREAM_CREDENTIALS_PATH",
        "FILE_STREAM_MESSAGES_URL",
    ):
        monkeypatch.delenv(name, raising=False)


def _patch_gateway(monkeypatch, body: bytes, status_code: int = 200) -> list[httpx.Request]:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(status_code, content=body)

    def factory(settings, *, token):
        return GatewaySource(
            settings,
            token=token,
            client=httpx.Client(transport=httpx.MockTransport(handler)),
        )

    monkeypatch.setattr(controllers, "GatewaySource", factory)
    return captured


def _sse_text(*texts: str) -> bytes:
    events = [
        json.dumps({"type": "content_block_delta", "delta": {"type": "text_delta", "text": text}})
        for text in texts
    ]
    return "".join(f"data: {event}\n\n" for event in events).encode()


def test_extract_writes_files_from_saved_response(tmp_path: Path) -> None:
    response = tmp_path / "response.txt"
    response.write_text(
        'intro <file path="a.txt">alpha</file> middle <file path="src/b/c.txt">gamma</file>',
        encoding="utf-8",
    )
    base_dir = tmp_path / "project"

    result = CliRunner().invoke(
        file_stream,
        ["extract", str(response), "--base-dir", str(base_dir), "--chunk-size", "3"],
    )

    assert result.exit_code == 0, result.output
    assert "status=completed records=2 written=2 errors=0" in result.output
    assert "  + src/a.txt" in result.output
    assert (base_dir / "src" / "a.txt").read_text(encoding="utf-8") == "alpha"
    assert (base_dir / "src" / "b" / "c.txt").read_text(encoding="utf-8") == "gamma"


def test_extract_reads_stdin_and_prints_json(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        file_stream,
        ["extract", "-", "--base-dir", str(tmp_path), "--root", "app", "--format", "json"],
        input='<file path="x.txt">abc</file><file path="y.txt">unfinished',
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["status"] == "completed"
    assert payload["fileWriteResults"] == {
        "written": ["app/x.txt"],
        "errors": [],
        "totalFiles": 1,
    }
    assert not (tmp_path / "app" / "y.txt").exists()


def test_extract_report_policy(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        file_stream,
        ["extract", "-", "--base-dir", str(tmp_path), "--unterminated", "report"],
        input='<file path="y.txt">unfinished',
    )

    assert result.exit_code == 0, result.output
    assert "status=incomplete" in result.output
    assert "Unterminated record y.txt" in result.output


def test_extract_without_records(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        file_stream,
        ["extract", "-", "--base-dir", str(tmp_path)],
        input="Sorry, I cannot help with that.",
    )

    assert result.exit_code == 0, result.output
    assert "No file records found" in result.output


def test_extract_rejects_unsafe_root(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        file_stream,
        ["extract", "-", "--base-dir", str(tmp_path), "--root", "../elsewhere"],
        input='<file path="x.txt">abc</file>',
    )

    assert result.exit_code == 1
    assert "Configuration error" in result.output


def test_prompt_streams_and_writes(tmp_path: Path, monkeypatch) -> None:
    credentials = tmp_path / "auth.json"
    credentials.write_text('{"accessToken": "tok-123456789"}', encoding="utf-8")
    base_dir = tmp_path / "project"
    (base_dir / "src").mkdir(parents=True)
    (base_dir / "src" / "Home.tsx").write_text("old home", encoding="utf-8")
    captured = _patch_gateway(
        monkeypatch,
        _sse_text('<file path="Home.tsx">', "new home", "</file>"),
    )

    result = CliRunner().invoke(
        file_stream,
        [
            "prompt",
            "Rewrite the home page",
            "--base-dir",
            str(base_dir),
            "--credentials",
            str(credentials),
            "--model",
            "test-model",
            "--context-file",
            "src/Home.tsx",
            "--echo",
        ],
    )

    assert result.exit_code == 0, result.output
    assert (base_dir / "src" / "Home.tsx").read_text(encoding="utf-8") == "new home"
    assert '<file path="Home.tsx">new home</file>' in result.output
    body = json.loads(captured[0].content)
    assert body["model"] == "test-model"
    assert body["messages"][0]["content"] == "Rewrite the home page"
    assert "old home" in body["system"][0]["text"]
    assert captured[0].headers["x-api-key"] == "tok-123456789"


def test_prompt_gateway_failure_exits_non_zero(tmp_path: Path, monkeypatch) -> None:
    credentials = tmp_path / "auth.json"
    credentials.write_text('{"token": "tok-123456789"}', encoding="utf-8")
    _patch_gateway(monkeypatch, b"overloaded", status_code=529)

    result = CliRunner().invoke(
        file_stream,
        ["prompt", "anything", "--base-dir", str(tmp_path), "--credentials", str(credentials)],
    )

    assert result.exit_code == 1
    assert "Stream failed: Gateway returned HTTP 529" in result.output


def test_prompt_missing_credentials(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        file_stream,
        [
            "prompt",
            "anything",
            "--base-dir",
            str(tmp_path),
            "--credentials",
            str(tmp_path / "missing.json"),
        ],
    )

    assert result.exit_code == 1
    assert "Credentials file not found" in result.output


def test_extract_rejects_response_that_is_not_utf8(tmp_path: Path) -> None:
    response = tmp_path / "response.bin"
    response.write_bytes(b'<file path="a.txt">\xff\xfe</file>')

    result = CliRunner().invoke(
        file_stream,
        ["extract", str(response), "--base-dir", str(tmp_path / "project")],
    )

    assert result.exit_code == 1
    assert not isinstance(result.exception, UnicodeDecodeError)
    assert "as UTF-8" in result.output
    assert not (tmp_path / "project").exists()


def test_prompt_rejects_context_file_that_is_not_utf8(tmp_path: Path, monkeypatch) -> None:
    credentials = tmp_path / "auth.json"
    credentials.write_text('{"token": "tok-123456789"}', encoding="utf-8")
    (tmp_path / "logo.png").write_bytes(b"\x89PNG\xff\xfe")
    captured = _patch_gateway(monkeypatch, _sse_text("unused"))

    result = CliRunner().invoke(
        file_stream,
        [
            "prompt",
            "anything",
            "--base-dir",
            str(tmp_path),
            "--credentials",
            str(credentials),
            "--context-file",
            "logo.png",
        ],
    )

    assert result.exit_code == 1
    assert "Cannot read context file" in result.output
    assert captured == []


def test_prompt_lists_read_only_files(tmp_path: Path, monkeypatch) -> None:
    credentials = tmp_path / "auth.json"
    credentials.write_text('{"token": "tok-123456789"}', encoding="utf-8")
    captured = _patch_gateway(
        monkeypatch,
        _sse_text("<message>Nothing to change</message>"),
    )

    result = CliRunner().invoke(
        file_stream,
        [
            "prompt",
            "Use the button",
            "--base-dir",
            str(tmp_path),
            "--credentials",
            str(credentials),
            "--read-only-file",
            "src/ui/Button.tsx",
        ],
    )

    assert result.exit_code == 0, result.output
    system = json.loads(captured[0].content)["system"][0]["text"]
    assert '<file path="src/ui/Button.tsx" readOnly="true" />' in system
    assert "  > Nothing to change" in result.output


def test_cancelled_session_still_reports_written_files(tmp_path: Path, monkeypatch) -> None:
    class InterruptedSource:
        def __init__(self, text: str, chunk_size: int) -> None:
            self.text = text

        def stream(self, request: PromptRequest):
            yield self.text
            raise KeyboardInterrupt

    monkeypatch.setattr(controllers, "ReplaySource", InterruptedSource)

    result = FileStreamCliController().extract(
        ExtractCommand(
            text='<file path="a.txt">done</file>',
            base_dir=tmp_path,
            root_prefix=None,
            chunk_size=None,
            unterminated_policy=None,
        ),
    )

    assert not result.success
    assert "  + src/a.txt" in result.lines
    assert "Stream failed: cancelled by user" in result.lines
    assert (tmp_path / "src" / "a.txt").read_text(encoding="utf-8") == "done"
