"""
Streaming provider implementations.
"""

from .openai import OpenAICompatibleProvider, DeepSeekProvider
from .openrouter import OpenRouterProvider
from .gemini import GeminiProvider

__all__ = [
    'OpenAICompatibleProvider',
    'DeepSeekProvider',
    'OpenRouterProvider',
    'GeminiProvider',
]
