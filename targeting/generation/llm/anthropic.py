"""Anthropic Claude LLM provider."""

import logging

from targeting.generation.llm.base import LLMProvider

logger = logging.getLogger(__name__)


class AnthropicProvider(LLMProvider):
    """LLM provider using the Anthropic Claude API."""

    @property
    def provider_id(self) -> str:
        return "anthropic"

    @property
    def default_model(self) -> str:
        return "claude-sonnet-4-20250514"

    @property
    def env_var(self) -> str:
        return "ANTHROPIC_API_KEY"

    def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
    ) -> str:
        api_key = self._require_key()

        try:
            import anthropic
        except ImportError:
            msg = (
                "anthropic is required for this provider. "
                "Install with: pip install 'targeting-mission[anthropic]'"
            )
            raise ImportError(msg) from None

        client = anthropic.Anthropic(api_key=api_key, timeout=self._timeout)
        use_model = model or self.default_model

        logger.info("Sending prompt to Anthropic API (%s, max_tokens=%d)", use_model, max_tokens)
        kwargs = {"system": system} if system else {}
        message = client.messages.create(
            model=use_model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[{"role": "user", "content": prompt}],
            **kwargs,
        )

        return message.content[0].text  # type: ignore[union-attr]
