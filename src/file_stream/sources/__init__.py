"""Prompt sources that feed text fragments into an extraction session."""

from file_stream.sources.base import (
    NonRetryableStreamError,
    PromptRequest,
    PromptSource,
    StreamError,
    TemporaryStreamError,
)
from file_stream.sources.credentials import CredentialsError, load_token
from file_stream.sources.gateway import GatewaySource, iter_sse_text
from file_stream.sources.replay import ReplaySource, iter_chunks

__all__ = [
    "CredentialsError",
    "GatewaySource",
    "NonRetryableStreamError",
    "PromptRequest",
    "PromptSource",
    "ReplaySource",
    "StreamError",
    "TemporaryStreamError",
    "iter_chunks",
    "iter_sse_text",
    "load_token",
]
