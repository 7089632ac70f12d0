"""LLM provider registry with lazy loading.

Usage:
    from targeting.generation.llm import get_provider

    provider = get_provider("anthropic", api_key=key, timeout=60.0)
    raw = provider.complete(prompt, max_tokens=2048, temperature=0.2)
"""

import importlib

from targeting.generation.llm.base import LLMProvider

__all__ = ["LLMProvider", "available_providers", "get_provider"]

# Lazy registry: maps provider name → (module_path, class_name)
_REGISTRY: dict[str, tuple[str, str]] = {
    "anthropic": ("targeting.generation.llm.anthropic", "AnthropicProvider"),
    "openai": ("targeting.generation.llm.openai", "OpenAIProvider"),
    "gemini": ("targeting.generation.llm.gemini", "GeminiProvider"),
    "ollama": ("targeting.generation.llm.ollama", "OllamaProvider"),
}


def get_provider(name: str, api_key: str | None = None, timeout: float = 60.0) -> LLMProvider:
    """Instantiate and return an LLM provider by name.

    Args:
        name: Provider identifier (anthropic, openai, gemini, ollama).
        api_key: Key resolved at startup; None for keyless providers.
        timeout: Per-call timeout in seconds.

    Returns:
        An LLMProvider instance.

    Raises:
        ValueError: If the provider name is unknown.
    """
    if name not in _REGISTRY:
        valid = ", ".join(sorted(_REGISTRY))
        msg = f"Unknown LLM provider '{name}'. Available: {valid}"
        raise ValueError(msg)

    module_path, class_name = _REGISTRY[name]
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    return cls(api_key=api_key, timeout=timeout)  # type: ignore[no-any-return]


def available_providers() -> list[str]:
    """Return sorted list of registered provider names."""
    return sorted(_REGISTRY)
