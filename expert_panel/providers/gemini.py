"""Gemini provider using google-genai SDK with native async."""

import asyncio
import logging
import time

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from config.config_loader import ModelConfig
from expert_panel.providers.base import AIProvider, InvalidCredentialError, ProviderError

logger = logging.getLogger(__name__)

_AUTH_CODES = (401, 403)


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ModelConfig, api_key: str) -> None:
        self._config = config
        if not api_key.strip():
            raise InvalidCredentialError(config.name, "Missing API key")
        self._client = genai.Client(api_key=api_key.strip())

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
        contents = [
            genai_types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[genai_types.Part(text=m["content"])],
            )
            for m in messages
        ]

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._config.model,
                    contents=contents,
                    config=genai_types.GenerateContentConfig(
                        max_output_tokens=max_tokens,
                        system_instruction=system,
                    ),
                ),
                timeout=self._config.timeout_sec,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except genai_errors.APIError as exc:
            if exc.code in _AUTH_CODES:
                raise InvalidCredentialError(self._config.name) from exc
            raise ProviderError(self._config.name, exc.message or str(exc)) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise ProviderError(self._config.name, "Empty response text")

        token_count: int | None = None
        if response.usage_metadata:
            token_count = response.usage_metadata.total_token_count

        logger.info("Gemini completion: %.2fs, %s tokens", latency, token_count)
        return response.text
