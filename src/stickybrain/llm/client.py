"""OpenAI-compatible text generation client.

Works with any OpenAI-compatible chat completions API (OpenAI, local vLLM,
Ollama's OpenAI endpoint). Failures surface as `ProviderError`; callers
decide on the fallback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from stickybrain.errors import ProviderError

if TYPE_CHECKING:
    from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


@dataclass
class TextGenerator:
    """Async client for chat completions."""

    api_key: str
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    timeout: float = 60.0
    _client: "AsyncOpenAI" = field(init=False, repr=False)

    def __post_init__(self) -> None:
        from openai import AsyncOpenAI

        self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)

    @classmethod
    def from_config(cls, config) -> TextGenerator | None:
        """Create a generator, or ``None`` when no API key is configured."""
        if not config.openai_api_key:
            logger.info("OPENAI_API_KEY not set, generation stages will use fallbacks")
            return None
        return cls(
            api_key=config.openai_api_key,
            model=config.chat_model,
            base_url=config.openai_base_url,
        )

    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        max_tokens: int = 512,
        temperature: float = 0.3,
    ) -> str:
        """Return generated text for ``prompt``.

        Raises:
            ProviderError: if the request fails or the model returns nothing.
        """
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        logger.debug("LLM request: model=%s, max_tokens=%d", self.model, max_tokens)
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,  # type: ignore[arg-type]
                max_tokens=max_tokens,
                temperature=temperature,
                timeout=self.timeout,
            )
        except Exception as exc:
            raise ProviderError(f"chat completion failed: {exc}") from exc

        content = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not content:
            raise ProviderError("chat completion returned no content")
        logger.debug("LLM response: content_len=%d", len(content))
        return content

    async def aclose(self) -> None:
        await self._client.close()
