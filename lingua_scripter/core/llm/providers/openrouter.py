"""
OpenRouter provider implementation.

OpenRouter speaks the OpenAI chat completions format, with attribution
headers and optional upstream routing on top.
"""

from typing import Dict, Any, List, Optional
import httpx

from lingua_scripter.config import OPENROUTER_API_URL, OPENROUTER_REFERER, OPENROUTER_TITLE
from .openai import OpenAICompatibleProvider


def parse_route_providers(value: Optional[str]) -> List[str]:
    """Split a comma-separated provider list, dropping blanks"""
    if not value or not value.strip():
        return []
    return [name.strip() for name in value.split(",") if name.strip()]


class OpenRouterProvider(OpenAICompatibleProvider):
    """
    Provider for OpenRouter API.

    Configuration:
        endpoint: https://openrouter.ai/api/v1/chat/completions
        model: Model identifier (e.g., "anthropic/claude-3-opus")
        api_key: OpenRouter API key
        route_providers: Comma-separated upstream providers, e.g. "DeepInfra,Together"

    Example:
        >>> provider = OpenRouterProvider(
        ...     api_key="sk-or-...",
        ...     model="deepseek/deepseek-chat",
        ...     route_providers="DeepInfra"
        ... )
        >>> async for delta in provider.stream(system_prompt, user_prompt):
        ...     print(delta, end="")
    """

    provider_name = "openrouter"
    display_name = "OpenRouter"
    API_URL = OPENROUTER_API_URL

    def __init__(self, api_key: str, model: str = "deepseek/deepseek-chat",
                 route_providers: Optional[str] = None,
                 client: Optional[httpx.AsyncClient] = None):
        super().__init__(api_key, model, endpoint=None, client=client)
        self.route_providers = parse_route_providers(route_providers)

    def build_url(self) -> str:
        return self.API_URL

    def build_headers(self) -> Dict[str, str]:
        headers = super().build_headers()
        headers["HTTP-Referer"] = OPENROUTER_REFERER
        headers["X-Title"] = OPENROUTER_TITLE
        return headers

    def build_payload(self, system_prompt: str, user_prompt: str,
                      temperature: float, json_mode: bool) -> Dict[str, Any]:
        payload = super().build_payload(system_prompt, user_prompt, temperature, json_mode)
        if self.route_providers:
            payload["route"] = {"providers": list(self.route_providers)}
        return payload
