"""
Provider factory.

Maps a provider name to a streaming provider instance. Credentials fall back
to the environment when not given explicitly.
"""

from lingua_scripter.config import (
    DEFAULT_MODEL, GEMINI_API_KEY, DEEPSEEK_API_KEY, OPENROUTER_API_KEY,
    OPENAI_API_KEY, OPENAI_API_ENDPOINT, OPENROUTER_MODEL_PROVIDERS
)
from lingua_scripter.core.batch.models import GenerationSettings
from .base import StreamingProvider
from .providers import OpenAICompatibleProvider, DeepSeekProvider, OpenRouterProvider, GeminiProvider


SUPPORTED_PROVIDERS = ('gemini', 'deepseek', 'openrouter', 'openai')

# Request body field carrying each provider's key, and the environment variable it falls back to
API_KEY_FIELDS = {
    'gemini': ('apiKey', 'GEMINI_API_KEY'),
    'deepseek': ('deepseekApiKey', 'DEEPSEEK_API_KEY'),
    'openrouter': ('openRouterApiKey', 'OPENROUTER_API_KEY'),
    'openai': ('openaiApiKey', 'OPENAI_API_KEY'),
}


def create_llm_provider(provider_type: str = "gemini", **kwargs) -> StreamingProvider:
    """
    Factory function to create streaming providers.

    Missing credentials are not rejected here; the provider raises
    ProviderError when the stream is started.
    """
    provider_type = (provider_type or "").lower()
    model = kwargs.get("model") or DEFAULT_MODEL

    if provider_type == "gemini":
        return GeminiProvider(
            api_key=kwargs.get("api_key") or GEMINI_API_KEY,
            model=model
        )
    elif provider_type == "deepseek":
        return DeepSeekProvider(
            api_key=kwargs.get("api_key") or DEEPSEEK_API_KEY,
            model=model,
            client=kwargs.get("client")
        )
    elif provider_type == "openrouter":
        route_providers = kwargs.get("route_providers")
        if route_providers is None:
            route_providers = OPENROUTER_MODEL_PROVIDERS
        return OpenRouterProvider(
            api_key=kwargs.get("api_key") or OPENROUTER_API_KEY,
            model=model,
            route_providers=route_providers,
            client=kwargs.get("client")
        )
    elif provider_type == "openai":
        return OpenAICompatibleProvider(
            api_key=kwargs.get("api_key") or OPENAI_API_KEY,
            model=model,
            endpoint=kwargs.get("endpoint") or OPENAI_API_ENDPOINT,
            client=kwargs.get("client")
        )
    else:
        raise ValueError(f"Unknown provider type: {provider_type}")


def create_provider_from_settings(settings: GenerationSettings) -> StreamingProvider:
    """Build the provider described by a batch's generation settings"""
    return create_llm_provider(
        settings.provider,
        model=settings.model,
        api_key=settings.api_key,
        endpoint=settings.endpoint,
        route_providers=settings.route_providers
    )
