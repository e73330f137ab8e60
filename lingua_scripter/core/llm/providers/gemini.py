"""
Google Gemini provider implementation.

Gemini streams through the google-genai SDK rather than raw SSE, so this
provider normalizes SDK chunks into the same delta sequence as the
OpenAI-compatible providers.
"""

from typing import AsyncIterator, Optional, Any
import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..base import StreamingProvider
from ..exceptions import ProviderError, StreamAbortedError


# Translation of fiction routinely trips the default filters
SAFETY_SETTINGS = [
    types.SafetySetting(
        category=types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        threshold=types.HarmBlockThreshold.BLOCK_NONE
    ),
    types.SafetySetting(
        category=types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        threshold=types.HarmBlockThreshold.BLOCK_NONE
    ),
    types.SafetySetting(
        category=types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
        threshold=types.HarmBlockThreshold.BLOCK_NONE
    ),
    types.SafetySetting(
        category=types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
        threshold=types.HarmBlockThreshold.BLOCK_NONE
    ),
    types.SafetySetting(
        category=types.HarmCategory.HARM_CATEGORY_CIVIC_INTEGRITY,
        threshold=types.HarmBlockThreshold.BLOCK_NONE
    ),
]


class GeminiProvider(StreamingProvider):
    """
    Provider for Google Gemini API.

    Configuration:
        model: Model identifier (e.g., "gemini-2.5-flash")
        api_key: Gemini API key

    Example:
        >>> provider = GeminiProvider(api_key="AIza...", model="gemini-2.5-flash")
        >>> text = await provider.complete(system_prompt, user_prompt)
    """

    provider_name = "gemini"
    display_name = "Gemini"

    def __init__(self, api_key: str, model: str = "gemini-2.5-flash",
                 genai_client: Optional[Any] = None):
        """
        Initialize the Gemini provider.

        Args:
            api_key: Google AI API key
            model: Gemini model name
            genai_client: Optional pre-built ``genai.Client``
        """
        super().__init__(model, api_key=api_key)
        self._genai_client = genai_client

    def _get_genai_client(self):
        if self._genai_client is None:
            self._genai_client = genai.Client(api_key=self.api_key)
        return self._genai_client

    async def close(self):
        await super().close()
        self._genai_client = None

    def build_config(self, system_prompt: str, temperature: float,
                     json_mode: bool) -> types.GenerateContentConfig:
        config_params = {
            'system_instruction': system_prompt,
            'temperature': temperature,
            'safety_settings': SAFETY_SETTINGS
        }
        if json_mode:
            config_params['response_mime_type'] = 'application/json'
        return types.GenerateContentConfig(**config_params)

    @staticmethod
    def _describe(error: Exception) -> str:
        return getattr(error, 'message', None) or str(error)

    async def _stream_deltas(self, system_prompt: str, user_prompt: str,
                             temperature: float, json_mode: bool) -> AsyncIterator[str]:
        if not self.api_key:
            raise ProviderError("Gemini API Key is missing.", provider=self.provider_name)

        client = self._get_genai_client()
        config = self.build_config(system_prompt, temperature, json_mode)

        try:
            response_stream = await client.aio.models.generate_content_stream(
                model=self.model,
                contents=user_prompt,
                config=config
            )
        except genai_errors.APIError as e:
            raise ProviderError(self._describe(e), status_code=getattr(e, 'code', None),
                                provider=self.provider_name) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Failed to connect to Gemini: {e}",
                                provider=self.provider_name) from e

        started = False
        try:
            async for chunk in response_stream:
                text = chunk.text
                if text:
                    started = True
                    yield text
        except genai_errors.APIError as e:
            error_class = StreamAbortedError if started else ProviderError
            raise error_class(self._describe(e), status_code=getattr(e, 'code', None),
                              provider=self.provider_name) from e
        except httpx.HTTPError as e:
            error_class = StreamAbortedError if started else ProviderError
            raise error_class(f"Gemini stream interrupted: {e}",
                              provider=self.provider_name) from e
