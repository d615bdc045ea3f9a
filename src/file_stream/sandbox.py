"""Sandboxed file writer for extracted records."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath, PureWindowsPath

logger = logging.getLogger(__name__)


class WriteStatus(str, Enum):
    """Outcome of one record write attempt."""

    WRITTEN = "written"
    FAILED = "failed"


@dataclass(slots=True)
class WriteOutcome:
    """Result of writing one record.

    `path` is the normalized, sandbox-relative path even when the write failed.
    """

    path: str
    status: WriteStatus
    reason: str | None = None

    @property
    def is_written(self) -> bool:
        return self.status is WriteStatus.WRITTEN


class SandboxedWriter:
    """Writes record content below `base_dir / root_prefix` and nowhere else."""

    def __init__(self, base_dir: Path, root_prefix: str = "src") -> None:
        self.base_dir = base_dir
        self.root_prefix = root_prefix.strip().strip("/")

    @property
    def root_dir(self) -> Path:
        return self.base_dir / self.root_prefix

    def normalize(self, path: str) -> str:
        """Prefix `path` with the root unless it already starts with it."""

        candidate = path.strip()
        while candidate.startswith("./"):
            candidate = candidate[2:]
        prefix = f"{self.root_prefix}/"
        if candidate.startswith(prefix):
            return candidate
        return f"{prefix}{candidate}"

    def write(self, path: str, content: str) -> WriteOutcome:
        """Write `content` to the sandboxed location of `path`, replacing any old file."""

        normalized = self.normalize(path)
        reason = self._rejection_reason(raw_path=path, normalized=normalized)
        if reason is not None:
            logger.warning("Refusing to write %r: %s", path, reason)
            return WriteOutcome(path=normalized, status=WriteStatus.FAILED, reason=reason)

        target = self.base_dir / normalized
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except (OSError, ValueError) as error:
            logger.warning("Failed to write %s: %s", normalized, error)
            return WriteOutcome(path=normalized, status=WriteStatus.FAILED, reason=str(error))

        logger.info("Wrote %s (%d chars)", normalized, len(content))
        return WriteOutcome(path=normalized, status=WriteStatus.WRITTEN)

    def _rejection_reason(self, *, raw_path: str, normalized: str) -> str | None:
        stripped = raw_path.strip()
        if not stripped:
            return "empty path"
        if PurePosixPath(stripped).is_absolute() or PureWindowsPath(stripped).is_absolute():
            return "absolute path"

        try:
            root = self.root_dir.resolve()
            resolved = (self.base_dir / normalized).resolve()
        except (OSError, ValueError) as error:
            return f"invalid path: {error}"
        if resolved == root:
            return "path names the sandbox root, not a file"
        if root not in resolved.parents:
            return "path escapes sandbox root"
        return None
