"""Google Gemini LLM provider (google-genai SDK)."""

import logging

from targeting.generation.llm.base import LLMProvider

logger = logging.getLogger(__name__)


class GeminiProvider(LLMProvider):
    """LLM provider using the Google Gemini API (google-genai SDK)."""

    @property
    def provider_id(self) -> str:
        return "gemini"

    @property
    def default_model(self) -> str:
        return "gemini-2.5-flash"

    @property
    def env_var(self) -> str:
        return "GOOGLE_API_KEY"

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
            from google import genai
            from google.genai import types as genai_types
        except ImportError:
            msg = (
                "google-genai is required for this provider. "
                "Install with: pip install 'targeting-mission[gemini]'"
            )
            raise ImportError(msg) from None

        use_model = model or self.default_model

        logger.info("Sending prompt to Gemini API (%s, max_tokens=%d)", use_model, max_tokens)
        client = genai.Client(
            api_key=api_key,
            http_options=genai_types.HttpOptions(timeout=int(self._timeout * 1000)),
        )
        response = client.models.generate_content(
            model=use_model,
            contents=prompt,
            config=genai_types.GenerateContentConfig(
                system_instruction=system,
                max_output_tokens=max_tokens,
                temperature=temperature,
            ),
        )

        return response.text or ""
