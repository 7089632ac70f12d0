"""Structured generation over an LLM provider.

One provider call per request, then the parse ladder, then caller-declared
schema checks. Partial-failure tolerance is the caller's job: this adapter
raises, it never substitutes a fallback answer.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from targeting.core.config import Credentials, GenerationConfig
from targeting.core.errors import ConfigurationError, SchemaViolation, UpstreamUnavailable
from targeting.generation.llm.base import LLMProvider
from targeting.generation.parsing import DEFAULT_STAGES, ParseStage, parse_structured

logger = logging.getLogger(__name__)

_MISSING = object()


class TaskKind(StrEnum):
    """Task families; each maps to a configured temperature."""

    CLASSIFICATION = "classification"
    RANKING = "ranking"
    COPY = "copy"


@dataclass(frozen=True)
class GenerationSpec:
    """Everything needed for one structured generation call.

    ``required_keys`` are dotted paths; a ``[]`` suffix means "every element
    of this list", e.g. ``rankings[].contact_id``. ``bounds`` maps the same
    kind of path to an inclusive numeric range.
    """

    task: TaskKind
    prompt: str
    system: str | None = None
    required_keys: Sequence[str] = ()
    bounds: Mapping[str, tuple[float, float]] = field(default_factory=dict)
    max_tokens: int = 1024
    temperature: float | None = None


class GenerativeContentAdapter:
    """Calls the provider and returns a validated JSON object."""

    def __init__(
        self,
        provider: LLMProvider,
        config: GenerationConfig,
        stages: Sequence[ParseStage] = DEFAULT_STAGES,
    ) -> None:
        self._provider = provider
        self._config = config
        self._stages = tuple(stages)

    @classmethod
    def from_settings(
        cls, config: GenerationConfig, credentials: Credentials,
    ) -> "GenerativeContentAdapter":
        """Build the adapter for the configured provider."""
        from targeting.generation.llm import get_provider

        if config.key_env() and not credentials.generation_api_key:
            msg = f"{config.key_env()} is not set for provider '{config.provider}'"
            raise ConfigurationError(msg, reason="generation_credentials_missing")
        provider = get_provider(
            config.provider,
            api_key=credentials.generation_api_key,
            timeout=config.timeout_seconds,
        )
        return cls(provider, config)

    @property
    def provider_id(self) -> str:
        return self._provider.provider_id

    def temperature_for(self, task: TaskKind) -> float:
        temps = self._config.temperatures
        if task is TaskKind.CLASSIFICATION:
            return temps.classification
        if task is TaskKind.RANKING:
            return temps.ranking
        return temps.copy_text

    def generate_structured(self, spec: GenerationSpec) -> dict[str, Any]:
        """Run one generation and return the parsed, validated object.

        Raises:
            ConfigurationError: Provider credentials or SDK missing.
            UpstreamUnavailable: The provider call failed.
            UnparseableResponse: No parse stage recovered an object.
            SchemaViolation: A required key is missing or a bound is violated.
        """
        temperature = spec.temperature
        if temperature is None:
            temperature = self.temperature_for(spec.task)
        logger.info(
            "Generating %s via %s (max_tokens=%d, temperature=%.2f)",
            spec.task, self._provider.provider_id, spec.max_tokens, temperature,
        )

        try:
            raw = self._provider.complete(
                spec.prompt,
                model=self._config.model,
                system=spec.system,
                max_tokens=spec.max_tokens,
                temperature=temperature,
            )
        except ConfigurationError:
            raise
        except ImportError as e:
            raise ConfigurationError(str(e), reason="provider_sdk_missing") from e
        except Exception as e:
            msg = f"{self._provider.provider_id} call failed: {e}"
            raise UpstreamUnavailable(msg, service="generation") from e

        logger.debug("Raw %s response (%d chars)", spec.task, len(raw))
        data = parse_structured(raw, self._stages)
        validate_required(data, spec.required_keys)
        validate_bounds(data, spec.bounds)
        return data


def _resolve(data: Any, path: str) -> list[tuple[str, Any]]:
    """Expand a dotted path into ``(concrete_path, value)`` pairs.

    Missing segments resolve to ``_MISSING`` so callers can name them.
    """
    nodes: list[tuple[str, Any]] = [("", data)]
    for segment in path.split("."):
        each = segment.endswith("[]")
        key = segment[:-2] if each else segment
        expanded: list[tuple[str, Any]] = []
        for prefix, node in nodes:
            if node is _MISSING:
                expanded.append((prefix, node))
                continue
            here = f"{prefix}.{key}" if prefix else key
            value = node.get(key, _MISSING) if isinstance(node, dict) else _MISSING
            if not each or value is _MISSING:
                expanded.append((here, value))
                continue
            if not isinstance(value, list):
                expanded.append((here, _MISSING))
                continue
            expanded.extend((f"{here}[{i}]", item) for i, item in enumerate(value))
        nodes = expanded
    return nodes


def validate_required(data: dict[str, Any], required_keys: Sequence[str]) -> None:
    """Raise SchemaViolation naming the first missing key."""
    for path in required_keys:
        for concrete, value in _resolve(data, path):
            if value is _MISSING or value is None:
                msg = f"Missing required key '{concrete}'"
                raise SchemaViolation(msg, field=concrete)


def validate_bounds(data: dict[str, Any], bounds: Mapping[str, tuple[float, float]]) -> None:
    """Raise SchemaViolation for out-of-range or non-numeric bounded fields."""
    for path, (low, high) in bounds.items():
        for concrete, value in _resolve(data, path):
            if value is _MISSING:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                msg = f"'{concrete}' must be numeric, got {value!r}"
                raise SchemaViolation(msg, field=concrete)
            if not low <= value <= high:
                msg = f"'{concrete}' = {value} outside [{low}, {high}]"
                raise SchemaViolation(msg, field=concrete)
