"""OpenAI provider using openai SDK with native async."""

import asyncio
import logging
import time

import openai
from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from expert_panel.providers.base import AIProvider, InvalidCredentialError, ProviderError

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI chat completions via openai SDK."""

    def __init__(self, config: ModelConfig, api_key: str) -> None:
        self._config = config
        if not api_key.strip():
            raise InvalidCredentialError(config.name, "Missing API key")
        self._client = AsyncOpenAI(api_key=api_key.strip(), base_url=config.base_url)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None,
        max_tokens: int,
    ) -> str:
        payload = list(messages)
        if system:
            payload.insert(0, {"role": "system", "content": system})

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._config.model,
                    messages=payload,
                    max_tokens=max_tokens,
                ),
                timeout=self._config.timeout_sec,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except openai.AuthenticationError as exc:
            raise InvalidCredentialError(self._config.name) from exc
        except openai.APIStatusError as exc:
            raise ProviderError(self._config.name, exc.message) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        logger.info(
            "OpenAI completion: %.2fs, %s tokens",
            latency,
            response.usage.total_tokens if response.usage else None,
        )
        return choice.message.content
