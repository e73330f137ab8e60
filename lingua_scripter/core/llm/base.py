"""
Base classes for streaming LLM providers.

This module defines the abstract base class that all providers implement. A
provider turns one generic request (system prompt, user prompt, temperature)
into one upstream call and exposes the answer as an async sequence of text
deltas whose concatenation is exactly the upstream output.
"""

import time
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional
import httpx

from lingua_scripter.config import CONNECT_TIMEOUT, DEFAULT_TEMPERATURE as CONFIGURED_TEMPERATURE
from lingua_scripter.utils.unified_logger import get_logger, LogType


class StreamingProvider(ABC):
    """Abstract base class for streaming LLM providers"""

    provider_name = "base"
    display_name = "Base"
    DEFAULT_TEMPERATURE = CONFIGURED_TEMPERATURE

    def __init__(self, model: str, api_key: Optional[str] = None,
                 client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the provider.

        Args:
            model: Model name/identifier
            api_key: Provider credential
            client: Optional pre-built HTTP client (mainly for tests)
        """
        self.model = model
        self.api_key = api_key
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create a persistent HTTP client with connection pooling"""
        if self._client is None:
            # Long generations are bounded only by the connect phase
            self._client = httpx.AsyncClient(
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
                timeout=httpx.Timeout(None, connect=CONNECT_TIMEOUT)
            )
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    def resolve_temperature(self, temperature: Optional[float]) -> float:
        return self.DEFAULT_TEMPERATURE if temperature is None else temperature

    async def stream(self, system_prompt: str, user_prompt: str,
                     temperature: Optional[float] = None,
                     json_mode: bool = False) -> AsyncIterator[str]:
        """
        Stream the model's answer as text deltas.

        Args:
            system_prompt: System instruction (role/instructions)
            user_prompt: The user prompt (content to process)
            temperature: Sampling temperature, provider default when None
            json_mode: Ask the upstream for a JSON object response

        Yields:
            Non-empty text deltas in arrival order

        Raises:
            ProviderError: Before the first delta, when the call cannot start
            StreamAbortedError: When the transport fails mid-stream
        """
        logger = get_logger()
        logger.info("Sending request to LLM", LogType.LLM_REQUEST, {
            'provider': self.display_name,
            'model': self.model,
            'system_prompt': system_prompt,
            'user_prompt': user_prompt
        })

        start_time = time.perf_counter()
        response_parts = []
        deltas = self._stream_deltas(system_prompt, user_prompt,
                                     self.resolve_temperature(temperature), json_mode)
        try:
            async for delta in deltas:
                response_parts.append(delta)
                yield delta
        finally:
            await deltas.aclose()

        response = ''.join(response_parts)
        logger.info("LLM stream finished", LogType.LLM_RESPONSE, {
            'execution_time': time.perf_counter() - start_time,
            'response_length': len(response),
            'response': response
        })

    async def complete(self, system_prompt: str, user_prompt: str,
                       temperature: Optional[float] = None,
                       json_mode: bool = False) -> str:
        """Run a request to the end and return the joined text"""
        parts = []
        async for delta in self.stream(system_prompt, user_prompt, temperature, json_mode):
            parts.append(delta)
        return ''.join(parts)

    @abstractmethod
    def _stream_deltas(self, system_prompt: str, user_prompt: str,
                       temperature: float, json_mode: bool) -> AsyncIterator[str]:
        """
        Provider-specific streaming call.

        Implementations are async generators. They must raise ProviderError
        before yielding anything when the call fails to start.
        """
        pass
