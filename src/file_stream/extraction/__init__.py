"""Incremental recognition of `<file>` records in a fragmented text stream."""

from file_stream.extraction.extractor import CLOSE_TAG, MESSAGE_CLOSE_TAG, RecordExtractor
from file_stream.extraction.models import (
    Message,
    Record,
    RecordStart,
    Token,
    UnterminatedPolicy,
)

__all__ = [
    "CLOSE_TAG",
    "MESSAGE_CLOSE_TAG",
    "Message",
    "Record",
    "RecordExtractor",
    "RecordStart",
    "Token",
    "UnterminatedPolicy",
]
