"""Ollama local LLM provider (OpenAI-compatible API)."""

import logging

from targeting.generation.llm.base import LLMProvider
from targeting.generation.llm.openai import chat_messages

logger = logging.getLogger(__name__)

_OLLAMA_BASE_URL = "http://localhost:11434/v1"


class OllamaProvider(LLMProvider):
    """LLM provider using a local Ollama instance via OpenAI-compatible API."""

    @property
    def provider_id(self) -> str:
        return "ollama"

    @property
    def default_model(self) -> str:
        return "llama3"

    @property
    def env_var(self) -> None:
        return None

    def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
    ) -> str:
        try:
            import openai
        except ImportError:
            msg = (
                "openai is required for Ollama (OpenAI-compatible API). "
                "Install with: pip install 'targeting-mission[openai]'"
            )
            raise ImportError(msg) from None

        client = openai.OpenAI(base_url=_OLLAMA_BASE_URL, api_key="ollama", timeout=self._timeout)
        use_model = model or self.default_model

        logger.info("Sending prompt to Ollama (%s)", use_model)
        response = client.chat.completions.create(
            model=use_model,
            messages=chat_messages(prompt, system),  # type: ignore[arg-type]
            max_tokens=max_tokens,
            temperature=temperature,
        )

        return response.choices[0].message.content or ""
