"""
OpenAI-compatible provider implementation.

This module provides the streaming providers that speak the OpenAI chat
completions wire format (Server-Sent Events with ``choices[0].delta.content``):

    - OpenAICompatibleProvider: any OpenAI-compatible server (custom endpoint)
    - DeepSeekProvider: DeepSeek's hosted API
"""

import json
from typing import AsyncIterator, Dict, Any, Optional
import httpx

from lingua_scripter.config import DEEPSEEK_API_URL, OPENAI_DEFAULT_TEMPERATURE
from ..base import StreamingProvider
from ..exceptions import ProviderError, StreamAbortedError
from ..utils.sse import is_done_line, parse_sse_line


class OpenAICompatibleProvider(StreamingProvider):
    """
    Provider for OpenAI-compatible chat completion APIs.

    The request is a single ``POST`` with ``stream: true``. The response body
    is read with ``aiter_lines()``, so lines and multi-byte characters split
    across network reads arrive whole.

    Configuration:
        endpoint: Base URL of the server (``/v1/chat/completions`` is appended)
        model: Model identifier
        api_key: Bearer token
    """

    provider_name = "openai"
    display_name = "OpenAI"
    DEFAULT_TEMPERATURE = OPENAI_DEFAULT_TEMPERATURE

    def __init__(self, api_key: str, model: str, endpoint: Optional[str] = None,
                 client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the OpenAI-compatible provider.

        Args:
            api_key: API key sent as a Bearer token
            model: Model identifier
            endpoint: Base URL of the server, required for the custom provider
            client: Optional pre-built HTTP client
        """
        super().__init__(model, api_key=api_key, client=client)
        self.endpoint = endpoint

    def build_url(self) -> str:
        if not self.endpoint:
            raise ProviderError(f"{self.display_name} Endpoint URL is missing.",
                                provider=self.provider_name)
        return f"{self.endpoint.rstrip('/')}/v1/chat/completions"

    def build_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}"
        }

    def build_payload(self, system_prompt: str, user_prompt: str,
                      temperature: float, json_mode: bool) -> Dict[str, Any]:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt}
            ],
            "temperature": temperature,
            "stream": True
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    def _validate(self):
        if not self.api_key:
            raise ProviderError(f"{self.display_name} API Key is missing.",
                                provider=self.provider_name)

    @staticmethod
    def _error_message(body: bytes, status_code: int) -> str:
        """Pull ``error.message`` out of a JSON error body when there is one"""
        try:
            data = json.loads(body.decode("utf-8", errors="replace"))
        except json.JSONDecodeError:
            data = None

        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and error.get("message"):
                return error["message"]
            if isinstance(error, str) and error:
                return error
            if data.get("message"):
                return str(data["message"])

        if status_code >= 400:
            return f"API returned status {status_code}"
        return "Streaming batch translation failed."

    async def _stream_deltas(self, system_prompt: str, user_prompt: str,
                             temperature: float, json_mode: bool) -> AsyncIterator[str]:
        self._validate()
        url = self.build_url()
        headers = self.build_headers()
        payload = self.build_payload(system_prompt, user_prompt, temperature, json_mode)

        client = await self._get_client()
        try:
            async with client.stream("POST", url, headers=headers, json=payload) as response:
                content_type = response.headers.get("content-type", "")

                # Upstream answered with an error document instead of an event stream
                if "application/json" in content_type or response.status_code >= 400:
                    body = await response.aread()
                    raise ProviderError(self._error_message(body, response.status_code),
                                        status_code=response.status_code,
                                        provider=self.provider_name)

                try:
                    async for line in response.aiter_lines():
                        if is_done_line(line):
                            break
                        delta = parse_sse_line(line)
                        if delta is not None:
                            yield delta
                except httpx.HTTPError as e:
                    raise StreamAbortedError(
                        f"{self.display_name} stream interrupted: {e}",
                        status_code=response.status_code,
                        provider=self.provider_name
                    ) from e

        except httpx.HTTPError as e:
            raise ProviderError(f"Failed to connect to {self.display_name}: {e}",
                                provider=self.provider_name) from e


class DeepSeekProvider(OpenAICompatibleProvider):
    """
    Provider for the DeepSeek API.

    Configuration:
        endpoint: https://api.deepseek.com/v1/chat/completions
        model: Model identifier (e.g., "deepseek-chat")
        api_key: DeepSeek API key
    """

    provider_name = "deepseek"
    display_name = "DeepSeek"
    API_URL = DEEPSEEK_API_URL

    def __init__(self, api_key: str, model: str = "deepseek-chat",
                 client: Optional[httpx.AsyncClient] = None):
        super().__init__(api_key, model, endpoint=None, client=client)

    def build_url(self) -> str:
        return self.API_URL
