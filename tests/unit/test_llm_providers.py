"""Tests for LLM provider registry and SDK wiring."""

from unittest.mock import MagicMock, patch

import pytest

from targeting.core.errors import ConfigurationError
from targeting.generation.llm import available_providers, get_provider
from targeting.generation.llm.base import LLMProvider


# ---------------------------------------------------------------------------
# Registry tests
# ---------------------------------------------------------------------------
class TestProviderRegistry:
    @pytest.mark.parametrize("name", ["anthropic", "openai", "gemini", "ollama"])
    def test_get_provider(self, name: str) -> None:
        provider = get_provider(name, api_key="k")
        assert isinstance(provider, LLMProvider)
        assert provider.provider_id == name

    def test_unknown_provider_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown LLM provider 'nope'"):
            get_provider("nope")

    def test_available_providers_sorted(self) -> None:
        assert available_providers() == ["anthropic", "gemini", "ollama", "openai"]


# ---------------------------------------------------------------------------
# Anthropic provider tests
# ---------------------------------------------------------------------------
class TestAnthropicProvider:
    def test_identity(self) -> None:
        provider = get_provider("anthropic")
        assert provider.default_model == "claude-sonnet-4-20250514"
        assert provider.env_var == "ANTHROPIC_API_KEY"

    def test_missing_api_key(self) -> None:
        provider = get_provider("anthropic")
        with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
            provider.complete("prompt")

    def test_missing_sdk(self) -> None:
        provider = get_provider("anthropic", api_key="test-key")
        with (
            patch.dict("sys.modules", {"anthropic": None}),
            pytest.raises(ImportError, match="anthropic is required"),
        ):
            provider.complete("prompt")

    def test_call_arguments(self) -> None:
        provider = get_provider("anthropic", api_key="key", timeout=12.0)
        mock_client = MagicMock()
        mock_message = MagicMock()
        mock_message.content = [MagicMock(text='{"ok": true}')]
        mock_client.messages.create.return_value = mock_message
        mock_anthropic = MagicMock()
        mock_anthropic.Anthropic.return_value = mock_client

        with patch.dict("sys.modules", {"anthropic": mock_anthropic}):
            text = provider.complete(
                "prompt", system="sys", max_tokens=500, temperature=0.3,
            )

        assert text == '{"ok": true}'
        mock_anthropic.Anthropic.assert_called_once_with(api_key="key", timeout=12.0)
        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs["system"] == "sys"
        assert kwargs["max_tokens"] == 500
        assert kwargs["temperature"] == 0.3
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]

    def test_no_system_kwarg_when_absent(self) -> None:
        provider = get_provider("anthropic", api_key="key")
        mock_client = MagicMock()
        mock_client.messages.create.return_value.content = [MagicMock(text="{}")]
        mock_anthropic = MagicMock()
        mock_anthropic.Anthropic.return_value = mock_client

        with patch.dict("sys.modules", {"anthropic": mock_anthropic}):
            provider.complete("prompt")

        assert "system" not in mock_client.messages.create.call_args.kwargs


# ---------------------------------------------------------------------------
# OpenAI provider tests
# ---------------------------------------------------------------------------
class TestOpenAIProvider:
    def test_identity(self) -> None:
        provider = get_provider("openai")
        assert provider.default_model == "gpt-4o-mini"
        assert provider.env_var == "OPENAI_API_KEY"

    def test_missing_api_key(self) -> None:
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            get_provider("openai").complete("prompt")

    def test_missing_sdk(self) -> None:
        provider = get_provider("openai", api_key="test-key")
        with (
            patch.dict("sys.modules", {"openai": None}),
            pytest.raises(ImportError, match="openai is required"),
        ):
            provider.complete("prompt")

    def test_system_message_first(self) -> None:
        provider = get_provider("openai", api_key="key")
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value.choices = [
            MagicMock(message=MagicMock(content="{}")),
        ]
        mock_openai = MagicMock()
        mock_openai.OpenAI.return_value = mock_client

        with patch.dict("sys.modules", {"openai": mock_openai}):
            assert provider.complete("prompt", system="sys", temperature=0.7) == "{}"

        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "prompt"},
        ]
        assert kwargs["temperature"] == 0.7


# ---------------------------------------------------------------------------
# Gemini provider tests
# ---------------------------------------------------------------------------
class TestGeminiProvider:
    def test_identity(self) -> None:
        provider = get_provider("gemini")
        assert provider.default_model == "gemini-2.5-flash"
        assert provider.env_var == "GOOGLE_API_KEY"

    def test_missing_api_key(self) -> None:
        with pytest.raises(ConfigurationError, match="GOOGLE_API_KEY"):
            get_provider("gemini").complete("prompt")

    def test_missing_sdk(self) -> None:
        provider = get_provider("gemini", api_key="test-key")
        with (
            patch.dict("sys.modules", {"google": None, "google.genai": None}),
            pytest.raises(ImportError, match="google-genai is required"),
        ):
            provider.complete("prompt")

    def test_config_passed(self) -> None:
        provider = get_provider("gemini", api_key="key", timeout=30.0)
        mock_types = MagicMock()
        mock_genai = MagicMock()
        mock_genai.types = mock_types
        mock_genai.Client.return_value.models.generate_content.return_value.text = "{}"
        mock_google = MagicMock()
        mock_google.genai = mock_genai

        with patch.dict(
            "sys.modules",
            {"google": mock_google, "google.genai": mock_genai, "google.genai.types": mock_types},
        ):
            assert provider.complete("prompt", system="sys", max_tokens=99) == "{}"

        mock_types.HttpOptions.assert_called_once_with(timeout=30000)
        config_kwargs = mock_types.GenerateContentConfig.call_args.kwargs
        assert config_kwargs["system_instruction"] == "sys"
        assert config_kwargs["max_output_tokens"] == 99


# ---------------------------------------------------------------------------
# Ollama provider tests
# ---------------------------------------------------------------------------
class TestOllamaProvider:
    def test_identity(self) -> None:
        provider = get_provider("ollama")
        assert provider.default_model == "llama3"
        assert provider.env_var is None

    def test_no_key_needed(self) -> None:
        provider = get_provider("ollama")
        mock_client = MagicMock()
        mock_client.chat.completions.create.return_value.choices = [
            MagicMock(message=MagicMock(content="{}")),
        ]
        mock_openai = MagicMock()
        mock_openai.OpenAI.return_value = mock_client

        with patch.dict("sys.modules", {"openai": mock_openai}):
            assert provider.complete("prompt") == "{}"

        assert mock_openai.OpenAI.call_args.kwargs["base_url"] == "http://localhost:11434/v1"

    def test_missing_sdk(self) -> None:
        provider = get_provider("ollama")
        with (
            patch.dict("sys.modules", {"openai": None}),
            pytest.raises(ImportError, match="openai is required"),
        ):
            provider.complete("prompt")
