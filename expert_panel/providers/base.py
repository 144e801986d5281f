"""Abstract base for all model providers."""

from abc import ABC, abstractmethod

FAILURE_PREFIX = "Failed to get expert response"


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        self.detail = message
        super().__init__(f"{FAILURE_PREFIX}: [{provider_name}] {message}")


class InvalidCredentialError(ProviderError):
    """The provider rejected the API key (HTTP 401)."""

    def __init__(self, provider_name: str, message: str = "Invalid API key") -> None:
        super().__init__(provider_name, message)


class AIProvider(ABC):
    """Abstract base for all model providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the credential provider id (e.g. 'openai', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None,
        max_tokens: int,
    ) -> str:
        """Run one chat completion and return its text.

        Args:
            messages: Ordered ``{role, content}`` turns, roles "user"/"assistant".
            system: Persona sent through the provider's native system prompt,
                or None when the persona is already part of ``messages``.
            max_tokens: Completion token cap.

        Raises:
            InvalidCredentialError: The API key was rejected.
            ProviderError: On any other API failure, timeout, or empty response.
        """
        ...
