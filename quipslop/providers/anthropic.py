"""Anthropic Claude provider using anthropic SDK with native async."""

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from quipslop.providers.base import ConfiguredProvider


class AnthropicProvider(ConfiguredProvider):
    """Claude called directly. The system prompt travels in the top-level ``system`` field."""

    def __init__(self, config: ModelConfig) -> None:
        super().__init__(config)
        self._client = anthropic_sdk.AsyncAnthropic(api_key=self._api_key)

    async def _request(self, system: str, prompt: str) -> tuple[str | None, int | None]:
        response = await self._client.messages.create(
            model=self._config.id,
            max_tokens=self._config.max_tokens,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        text = "\n".join(b.text for b in response.content if b.type == "text")
        usage = response.usage
        return text, (usage.input_tokens + usage.output_tokens) if usage else None
