"""API key validation, used when a key is added and by ``keys check``."""

import asyncio
import logging
from dataclasses import dataclass

import anthropic
import openai

from expert_panel.models import Credential

logger = logging.getLogger(__name__)

VALIDATABLE_PROVIDERS: tuple[str, ...] = ("openai", "claude")

_TIMEOUT_SEC = 15.0


@dataclass
class KeyValidation:
    valid: bool
    error: str | None = None

    def to_dict(self) -> dict:
        out: dict = {"valid": self.valid}
        if self.error:
            out["error"] = self.error
        return out


async def _list_models(provider: str, key: str) -> None:
    if provider == "openai":
        await openai.AsyncOpenAI(api_key=key).models.list()
    else:
        await anthropic.AsyncAnthropic(api_key=key).models.list()


async def validate_key(provider: str, key: str) -> KeyValidation:
    """Check a key against the provider's model-listing endpoint.

    Never raises; every failure is reported in the returned KeyValidation.
    """
    if provider not in VALIDATABLE_PROVIDERS:
        return KeyValidation(False, "Invalid provider")
    if not key.strip():
        return KeyValidation(False, "Provider and key are required")

    try:
        await asyncio.wait_for(_list_models(provider, key.strip()), timeout=_TIMEOUT_SEC)
    except (openai.AuthenticationError, anthropic.AuthenticationError):
        return KeyValidation(False, "Invalid API key")
    except (openai.APIStatusError, anthropic.APIStatusError) as exc:
        return KeyValidation(False, exc.message or "Validation failed")
    except Exception as exc:
        logger.warning("Key validation for %s failed: %s", provider, type(exc).__name__)
        return KeyValidation(False, "Network error during validation")
    return KeyValidation(True)


async def check_credentials(credentials: list[Credential]) -> dict[str, KeyValidation]:
    """Validate many stored keys concurrently. Returns credential id -> result."""
    results = await asyncio.gather(*(validate_key(c.provider, c.secret) for c in credentials))
    return {c.id: r for c, r in zip(credentials, results)}
