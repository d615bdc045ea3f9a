"""Stream LLM output into files, one `<file>` record at a time."""

from file_stream.__about__ import __version__

__all__ = ["__version__"]
