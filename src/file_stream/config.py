"""Runtime configuration for file extraction sessions."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from file_stream.extraction.models import UnterminatedPolicy

DEFAULT_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_MODEL = "claude-sonnet-4-20250514"


@dataclass(slots=True)
class SandboxSettings:
    """Where extracted files land on disk."""

    base_dir: Path = Path(".")
    root_prefix: str = "src"


@dataclass(slots=True)
class ExtractionSettings:
    """Record extraction settings."""

    unterminated_policy: UnterminatedPolicy = UnterminatedPolicy.DISCARD
    replay_chunk_size: int = 64


@dataclass(slots=True)
class GatewaySettings:
    """Streaming LLM gateway settings."""

    messages_url: str = DEFAULT_MESSAGES_URL
    auth_header: str = "x-api-key"
    model: str = DEFAULT_MODEL
    max_tokens: int = 64_000
    temperature: float = 0.0
    credentials_path: Path = Path("~/.config/file-stream/auth.json")
    request_timeout_seconds: float = 600.0
    max_retries: int = 2
    extra_headers: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    sandbox: SandboxSettings = field(default_factory=SandboxSettings)
    extraction: ExtractionSettings = field(default_factory=ExtractionSettings)
    gateway: GatewaySettings = field(default_factory=GatewaySettings)
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, base_dir: Path | None = None) -> Settings:
        """Load settings from environment with defaults for local use."""

        return cls(
            sandbox=SandboxSettings(
                base_dir=base_dir or Path(os.getenv("FILE_STREAM_BASE_DIR", ".")),
                root_prefix=os.getenv("FILE_STREAM_ROOT_PREFIX", "src"),
            ),
            extraction=ExtractionSettings(
                unterminated_policy=_env_policy(
                    "FILE_STREAM_UNTERMINATED_POLICY",
                    default=UnterminatedPolicy.DISCARD,
                ),
                replay_chunk_size=int(os.getenv("FILE_STREAM_REPLAY_CHUNK_SIZE", "64")),
            ),
            gateway=GatewaySettings(
                messages_url=os.getenv("FILE_STREAM_MESSAGES_URL", DEFAULT_MESSAGES_URL),
                auth_header=os.getenv("FILE_STREAM_AUTH_HEADER", "x-api-key"),
                model=os.getenv("FILE_STREAM_MODEL", DEFAULT_MODEL),
                max_tokens=int(os.getenv("FILE_STREAM_MAX_TOKENS", "64000")),
                temperature=float(os.getenv("FILE_STREAM_TEMPERATURE", "0.0")),
                credentials_path=Path(
                    os.getenv(
                        "FILE_STREAM_CREDENTIALS_PATH",
                        "~/.config/file-stream/auth.json",
                    ),
                ).expanduser(),
                request_timeout_seconds=float(
                    os.getenv("FILE_STREAM_REQUEST_TIMEOUT_SECONDS", "600"),
                ),
                max_retries=int(os.getenv("FILE_STREAM_MAX_RETRIES", "2")),
                extra_headers=_collect_extra_headers(),
            ),
            log_level=os.getenv("FILE_STREAM_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> None:
        """Raise configuration error for values no session can run with."""

        root_prefix = self.sandbox.root_prefix.strip().strip("/")
        if not root_prefix:
            raise ValueError("FILE_STREAM_ROOT_PREFIX must not be empty.")
        if ".." in Path(root_prefix).parts or Path(self.sandbox.root_prefix).is_absolute():
            raise ValueError(
                "FILE_STREAM_ROOT_PREFIX must be a relative path inside the base directory.",
            )
        if self.extraction.replay_chunk_size <= 0:
            raise ValueError("FILE_STREAM_REPLAY_CHUNK_SIZE must be a positive integer.")

    def validate_for_gateway(self) -> None:
        """Raise configuration error if the gateway cannot be reached with these values."""

        self.validate()
        parsed = urlparse(self.gateway.messages_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"Invalid FILE_STREAM_MESSAGES_URL: {self.gateway.messages_url}")
        if not self.gateway.auth_header.strip():
            raise ValueError("FILE_STREAM_AUTH_HEADER must not be empty.")
        if self.gateway.max_tokens <= 0:
            raise ValueError("FILE_STREAM_MAX_TOKENS must be a positive integer.")
        if self.gateway.request_timeout_seconds <= 0:
            raise ValueError("FILE_STREAM_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.gateway.max_retries < 0:
            raise ValueError("FILE_STREAM_MAX_RETRIES must be >= 0.")


def _env_policy(name: str, default: UnterminatedPolicy) -> UnterminatedPolicy:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return UnterminatedPolicy(value.strip().lower())
    except ValueError as error:
        allowed = ", ".join(policy.value for policy in UnterminatedPolicy)
        raise ValueError(f"Invalid value for {name}: {value!r} (expected {allowed})") from error


def _collect_extra_headers() -> dict[str, str]:
    """Parse `FILE_STREAM_EXTRA_HEADERS` formatted as `Name=value;Other=value`."""

    raw = os.getenv("FILE_STREAM_EXTRA_HEADERS", "")
    headers: dict[str, str] = {}
    for chunk in raw.split(";"):
        item = chunk.strip()
        if not item:
            continue
        name, separator, value = item.partition("=")
        if not separator or not name.strip():
            raise ValueError(
                "Invalid FILE_STREAM_EXTRA_HEADERS entry. Expected format: Name=value",
            )
        headers[name.strip()] = value.strip()
    return headers
