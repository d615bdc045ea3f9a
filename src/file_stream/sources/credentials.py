"""Authorization token loading from a local credentials file."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from file_stream.sanitization import mask_token

logger = logging.getLogger(__name__)

_TOKEN_KEYS: tuple[str, ...] = ("token", "accessToken")


class CredentialsError(RuntimeError):
    """Credentials file is missing or unusable."""


def load_token(path: Path) -> str:
    """Read the authorization token from a JSON credentials file.

    The file holds an object with a `token` or `accessToken` string.
    """

    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as error:
        raise CredentialsError(f"Credentials file not found: {path}") from error
    except OSError as error:
        raise CredentialsError(f"Cannot read credentials file {path}: {error}") from error

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as error:
        raise CredentialsError(f"Invalid JSON in credentials file: {path}") from error

    if isinstance(payload, dict):
        for key in _TOKEN_KEYS:
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                token = value.strip()
                logger.debug("Loaded token %s from %s", mask_token(token), path)
                return token
    raise CredentialsError(f"No token found in credentials file: {path}")
