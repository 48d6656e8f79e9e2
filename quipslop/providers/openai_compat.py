"""OpenAI and OpenAI-compatible (OpenRouter) provider using openai SDK with native async."""

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from quipslop.providers.base import ConfiguredProvider, ProviderError


class OpenAICompatProvider(ConfiguredProvider):
    """Chat-completions provider. ``base_url`` selects OpenRouter or another compatible API."""

    def __init__(self, config: ModelConfig) -> None:
        super().__init__(config)
        if config.sdk == "openrouter" and not config.base_url:
            raise ProviderError(config.name, "base_url is required for OpenRouter participants")
        self._client = AsyncOpenAI(api_key=self._api_key, base_url=config.base_url)

    async def _request(self, system: str, prompt: str) -> tuple[str | None, int | None]:
        response = await self._client.chat.completions.create(
            model=self._config.id,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            max_tokens=self._config.max_tokens,
        )
        choice = response.choices[0] if response.choices else None
        text = choice.message.content if choice else None
        return text, response.usage.total_tokens if response.usage else None
