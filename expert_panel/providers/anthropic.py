"""Anthropic Claude provider using anthropic SDK with native async."""

import asyncio
import logging
import time

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from expert_panel.providers.base import AIProvider, InvalidCredentialError, ProviderError

logger = logging.getLogger(__name__)

_OPENING_TURN = "(The discussion begins.)"


def _normalize_turns(messages: list[dict[str, str]]) -> list[dict[str, str]]:
    """Merge consecutive same-role turns and make sure the first turn is a user turn."""
    merged: list[dict[str, str]] = []
    for msg in messages:
        if merged and merged[-1]["role"] == msg["role"]:
            merged[-1] = {"role": msg["role"], "content": f"{merged[-1]['content']}\n\n{msg['content']}"}
        else:
            merged.append(dict(msg))
    if merged and merged[0]["role"] != "user":
        merged.insert(0, {"role": "user", "content": _OPENING_TURN})
    return merged


class AnthropicProvider(AIProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, config: ModelConfig, api_key: str) -> None:
        self._config = config
        if not api_key.strip():
            raise InvalidCredentialError(config.name, "Missing API key")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key.strip())

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
        kwargs = {}
        if system:
            kwargs["system"] = system

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(
                    model=self._config.model,
                    max_tokens=max_tokens,
                    messages=_normalize_turns(messages),
                    **kwargs,
                ),
                timeout=self._config.timeout_sec,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except anthropic_sdk.AuthenticationError as exc:
            raise InvalidCredentialError(self._config.name) from exc
        except anthropic_sdk.APIStatusError as exc:
            raise ProviderError(self._config.name, exc.message) from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        text_blocks = [b.text for b in response.content or [] if b.type == "text"]
        if not text_blocks:
            raise ProviderError(self._config.name, "No text blocks in response")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.input_tokens + response.usage.output_tokens

        logger.info("Anthropic completion: %.2fs, %s tokens", latency, token_count)
        return "\n".join(text_blocks)
