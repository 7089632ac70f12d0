"""Abstract base class for LLM providers."""

from abc import ABC, abstractmethod

from targeting.core.errors import ConfigurationError


class LLMProvider(ABC):
    """Base class that every LLM provider must implement."""

    def __init__(self, api_key: str | None = None, timeout: float = 60.0) -> None:
        self._api_key = api_key
        self._timeout = timeout

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'anthropic')."""

    @property
    @abstractmethod
    def default_model(self) -> str:
        """The default model ID used when no override is specified."""

    @property
    @abstractmethod
    def env_var(self) -> str | None:
        """Environment variable name for the API key, or None if not needed."""

    @abstractmethod
    def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
    ) -> str:
        """Send a prompt to the LLM and return the raw response text.

        Args:
            prompt: User message, including the expected JSON shape.
            model: Override the provider's default model. None uses default.
            system: Optional system instruction.
            max_tokens: Upper bound on generated tokens.
            temperature: Sampling temperature.

        Returns:
            Raw text response (expected to contain one JSON object).
        """

    def _require_key(self) -> str:
        if not self._api_key:
            msg = f"{self.env_var} environment variable is required"
            raise ConfigurationError(msg, reason="generation_credentials_missing")
        return self._api_key
