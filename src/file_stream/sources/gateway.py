"""Streaming client for an Anthropic-compatible messages endpoint."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator

import httpx

from file_stream.config import GatewaySettings
from file_stream.sanitization import sanitize_preview
from file_stream.sources.base import (
    NonRetryableStreamError,
    PromptRequest,
    StreamError,
    TemporaryStreamError,
)

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
_TRANSIENT_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504, 529})
_TRANSIENT_ERROR_TYPES = frozenset({"overloaded_error", "rate_limit_error", "api_error"})


def build_request_body(settings: GatewaySettings, request: PromptRequest) -> dict[str, object]:
    """Messages API payload for one streamed completion."""

    return {
        "model": settings.model,
        "max_tokens": settings.max_tokens,
        "temperature": settings.temperature,
        "stream": True,
        "system": [{"type": "text", "text": request.system_prompt}],
        "messages": [{"role": "user", "content": request.user_prompt}],
    }


def iter_sse_text(lines: Iterable[str]) -> Iterator[str]:
    """Yield text deltas from server-sent event lines.

    Lines that are not `data:` lines, or whose payload is not valid JSON, are
    skipped. Iteration ends at `[DONE]` or a `message_stop` event; an `error`
    event raises a `StreamError`.
    """

    for line in lines:
        if not line.startswith("data:"):
            continue
        data = line[len("data:") :].strip()
        if data == "[DONE]":
            return
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            logger.debug(
                "Skipping malformed SSE payload: %s",
                sanitize_preview(data, max_chars=80),
            )
            continue
        if not isinstance(event, dict):
            continue

        event_type = event.get("type")
        if event_type == "message_stop":
            return
        if event_type == "error":
            raise _event_error(event)
        if event_type != "content_block_delta":
            continue
        delta = event.get("delta")
        if not isinstance(delta, dict):
            continue
        text = delta.get("text")
        if isinstance(text, str) and text:
            yield text


class GatewaySource:
    """Prompt source that streams completions over HTTP."""

    def __init__(
        self,
        settings: GatewaySettings,
        *,
        token: str,
        client: httpx.Client | None = None,
    ) -> None:
        self._settings = settings
        self._headers = {
            settings.auth_header: token,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        self._headers.update(settings.extra_headers)
        if client is None:
            client = httpx.Client(
                timeout=httpx.Timeout(settings.request_timeout_seconds, connect=10.0),
                transport=httpx.HTTPTransport(retries=settings.max_retries),
            )
        self._client = client

    def stream(self, request: PromptRequest) -> Iterator[str]:
        url = self._settings.messages_url
        body = build_request_body(self._settings, request)
        logger.info("Streaming completion from %s (model=%s)", url, self._settings.model)
        try:
            with self._client.stream("POST", url, json=body, headers=self._headers) as response:
                if not response.is_success:
                    response.read()
                    raise _status_error(response)
                yield from iter_sse_text(response.iter_lines())
        except httpx.TimeoutException as error:
            logger.warning("Timeout streaming from %s", url)
            raise TemporaryStreamError(
                message=f"Timeout streaming from {url}",
                code="timeout",
            ) from error
        except httpx.HTTPError as error:
            logger.warning("HTTP error streaming from %s: %s", url, error)
            raise TemporaryStreamError(
                message=f"Network error streaming from {url}: {error}",
                code="network_error",
            ) from error

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GatewaySource:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _status_error(response: httpx.Response) -> StreamError:
    preview = sanitize_preview(response.text, max_chars=200)
    message = f"Gateway returned HTTP {response.status_code}"
    if preview:
        message = f"{message}: {preview}"
    if response.status_code in _TRANSIENT_STATUS_CODES:
        retry_after = response.headers.get("retry-after")
        return TemporaryStreamError(
            message=message,
            code=f"http_{response.status_code}",
            status_code=response.status_code,
            retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
        )
    return NonRetryableStreamError(
        message=message,
        code=f"http_{response.status_code}",
        status_code=response.status_code,
    )


def _event_error(event: dict[str, object]) -> StreamError:
    error = event.get("error")
    error_type = "unknown_error"
    detail = "stream reported an error"
    if isinstance(error, dict):
        error_type = str(error.get("type") or error_type)
        detail = str(error.get("message") or detail)
    message = f"Stream error ({error_type}): {sanitize_preview(detail, max_chars=200)}"
    if error_type in _TRANSIENT_ERROR_TYPES:
        return TemporaryStreamError(message=message, code=error_type)
    return NonRetryableStreamError(message=message, code=error_type)
