"""OpenAI LLM provider."""

import logging

from targeting.generation.llm.base import LLMProvider

logger = logging.getLogger(__name__)


def chat_messages(prompt: str, system: str | None) -> list[dict[str, str]]:
    """Build an OpenAI-style chat message list."""
    messages = [{"role": "system", "content": system}] if system else []
    messages.append({"role": "user", "content": prompt})
    return messages


class OpenAIProvider(LLMProvider):
    """LLM provider using the OpenAI API."""

    @property
    def provider_id(self) -> str:
        return "openai"

    @property
    def default_model(self) -> str:
        return "gpt-4o-mini"

    @property
    def env_var(self) -> str:
        return "OPENAI_API_KEY"

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
            import openai
        except ImportError:
            msg = (
                "openai is required for this provider. "
                "Install with: pip install 'targeting-mission[openai]'"
            )
            raise ImportError(msg) from None

        client = openai.OpenAI(api_key=api_key, timeout=self._timeout)
        use_model = model or self.default_model

        logger.info("Sending prompt to OpenAI API (%s, max_tokens=%d)", use_model, max_tokens)
        response = client.chat.completions.create(
            model=use_model,
            messages=chat_messages(prompt, system),  # type: ignore[arg-type]
            max_tokens=max_tokens,
            temperature=temperature,
        )

        return response.choices[0].message.content or ""
