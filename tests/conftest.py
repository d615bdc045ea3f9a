"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from file_stream.sandbox import SandboxedWriter
from file_stream.session import SessionCoordinator

SAMPLE_STREAM = (
    "Sure, here are the files.\n"
    '<file path="src/App.tsx">\n  export const App = () => <div>hi</div>;\n</file>\n'
    "Some prose with a < sign and <b>markup</b>.\n"
    '<file path="lib/util.ts" description="helpers">\nexport {};\n</file>'
    '<file path="notes.md"></file>'
    'trailing text <file path="partial.txt">never closed'
)


@pytest.fixture()
def writer(tmp_path: Path) -> SandboxedWriter:
    return SandboxedWriter(tmp_path / "project")


@pytest.fixture()
def coordinator(writer: SandboxedWriter) -> SessionCoordinator:
    return SessionCoordinator(writer)


@pytest.fixture()
def sample_stream() -> str:
    return SAMPLE_STREAM
