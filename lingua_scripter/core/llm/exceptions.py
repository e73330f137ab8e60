"""
LLM-specific exceptions.

This module defines all custom exceptions used in the streaming provider system.
"""
from typing import Optional


class ProviderError(Exception):
    """
    Raised when an upstream provider call cannot produce a stream.

    Covers missing credentials, a missing custom endpoint, non-2xx statuses,
    JSON error bodies returned instead of an event stream and connection
    failures. When raised before the first delta, no delta has been yielded.
    """

    def __init__(self, message: str, status_code: Optional[int] = None,
                 provider: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.provider = provider

    def __str__(self) -> str:
        return self.message


class StreamAbortedError(ProviderError):
    """
    Raised when the transport fails after the stream has started.

    Deltas yielded before the failure remain valid; the caller decides what
    to keep.
    """
    pass
