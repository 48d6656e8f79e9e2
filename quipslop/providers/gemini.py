"""Gemini provider using google-genai SDK with native async."""

from google import genai
from google.genai import types as genai_types

from config.config_loader import ModelConfig
from quipslop.providers.base import ConfiguredProvider


class GeminiProvider(ConfiguredProvider):
    def __init__(self, config: ModelConfig) -> None:
        super().__init__(config)
        self._client = genai.Client(api_key=self._api_key)

    async def _request(self, system: str, prompt: str) -> tuple[str | None, int | None]:
        response = await self._client.aio.models.generate_content(
            model=self._config.id,
            contents=prompt,
            config=genai_types.GenerateContentConfig(
                system_instruction=system,
                max_output_tokens=self._config.max_tokens,
            ),
        )
        usage = response.usage_metadata
        return response.text, usage.total_token_count if usage else None
