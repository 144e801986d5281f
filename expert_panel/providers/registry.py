"""Map a stored credential to the provider adapter that can use it."""

from config.config_loader import AppConfig
from expert_panel.models import Credential
from expert_panel.providers.anthropic import AnthropicProvider
from expert_panel.providers.base import AIProvider, ProviderError
from expert_panel.providers.gemini import GeminiProvider
from expert_panel.providers.openai_provider import OpenAIProvider

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "openai": OpenAIProvider,
    "claude": AnthropicProvider,
    "gemini": GeminiProvider,
}


def provider_for(credential: Credential, config: AppConfig) -> AIProvider:
    """Build the adapter for ``credential.provider`` using its configured model."""
    cls = PROVIDER_CLASSES.get(credential.provider)
    model_cfg = config.models.get(credential.provider)
    if cls is None or model_cfg is None:
        raise ProviderError(credential.provider, f"Unsupported provider: {credential.provider}")
    return cls(model_cfg, credential.secret)
