"""
Streaming LLM providers.

Every provider exposes the same contract: one request in, an async sequence
of text deltas out.
"""

from .base import StreamingProvider
from .exceptions import ProviderError, StreamAbortedError
from .factory import create_llm_provider, create_provider_from_settings, SUPPORTED_PROVIDERS

__all__ = [
    'StreamingProvider',
    'ProviderError',
    'StreamAbortedError',
    'create_llm_provider',
    'create_provider_from_settings',
    'SUPPORTED_PROVIDERS',
]
