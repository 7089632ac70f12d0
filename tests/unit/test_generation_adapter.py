"""Tests for the structured generation adapter: call, parse, validate."""

from unittest.mock import MagicMock

import pytest

from targeting.core.config import Credentials, GenerationConfig
from targeting.core.errors import (
    ConfigurationError,
    SchemaViolation,
    UnparseableResponse,
    UpstreamUnavailable,
)
from targeting.generation.adapter import (
    GenerationSpec,
    GenerativeContentAdapter,
    TaskKind,
    validate_bounds,
    validate_required,
)
from targeting.generation.llm.base import LLMProvider


def _provider(response: str = '{"ok": true}') -> MagicMock:
    provider = MagicMock(spec=LLMProvider)
    provider.provider_id = "mock"
    provider.complete.return_value = response
    return provider


def _adapter(provider: MagicMock, **config: object) -> GenerativeContentAdapter:
    return GenerativeContentAdapter(provider, GenerationConfig(**config))  # type: ignore[arg-type]


def _spec(**kw: object) -> GenerationSpec:
    defaults: dict[str, object] = {"task": TaskKind.RANKING, "prompt": "rank these"}
    defaults.update(kw)
    return GenerationSpec(**defaults)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Provider call
# ---------------------------------------------------------------------------
class TestProviderCall:
    def test_passes_bounds_and_task_temperature(self) -> None:
        provider = _provider()
        adapter = _adapter(provider, model="m-1")
        adapter.generate_structured(_spec(max_tokens=321, system="sys"))

        provider.complete.assert_called_once_with(
            "rank these", model="m-1", system="sys", max_tokens=321, temperature=0.2,
        )

    @pytest.mark.parametrize(
        ("task", "expected"),
        [(TaskKind.CLASSIFICATION, 0.0), (TaskKind.RANKING, 0.2), (TaskKind.COPY, 0.7)],
    )
    def test_temperature_per_task(self, task: TaskKind, expected: float) -> None:
        assert _adapter(_provider()).temperature_for(task) == expected

    def test_configured_temperatures(self) -> None:
        adapter = _adapter(_provider(), temperatures={"copy": 0.9})
        assert adapter.temperature_for(TaskKind.COPY) == 0.9

    def test_explicit_temperature_wins(self) -> None:
        provider = _provider()
        _adapter(provider).generate_structured(_spec(temperature=0.55))
        assert provider.complete.call_args.kwargs["temperature"] == 0.55

    def test_provider_failure_is_upstream_unavailable(self) -> None:
        provider = _provider()
        provider.complete.side_effect = TimeoutError("read timed out")
        with pytest.raises(UpstreamUnavailable, match="read timed out") as exc:
            _adapter(provider).generate_structured(_spec())
        assert exc.value.service == "generation"

    def test_missing_key_propagates(self) -> None:
        provider = _provider()
        provider.complete.side_effect = ConfigurationError("no key", reason="x")
        with pytest.raises(ConfigurationError):
            _adapter(provider).generate_structured(_spec())

    def test_missing_sdk_is_configuration_error(self) -> None:
        provider = _provider()
        provider.complete.side_effect = ImportError("openai is required")
        with pytest.raises(ConfigurationError) as exc:
            _adapter(provider).generate_structured(_spec())
        assert exc.value.reason == "provider_sdk_missing"

    def test_unparseable_response(self) -> None:
        with pytest.raises(UnparseableResponse):
            _adapter(_provider("no json here")).generate_structured(_spec())

    def test_fenced_response_parsed(self) -> None:
        provider = _provider('Here you go:\n```json\n{"rankings": []}\n```')
        data = _adapter(provider).generate_structured(_spec(required_keys=["rankings"]))
        assert data == {"rankings": []}


class TestFromSettings:
    def test_missing_credentials(self) -> None:
        with pytest.raises(ConfigurationError) as exc:
            GenerativeContentAdapter.from_settings(GenerationConfig(), Credentials())
        assert exc.value.reason == "generation_credentials_missing"

    def test_keyless_provider(self) -> None:
        adapter = GenerativeContentAdapter.from_settings(
            GenerationConfig(provider="ollama"), Credentials(),
        )
        assert adapter.provider_id == "ollama"

    def test_builds_configured_provider(self) -> None:
        adapter = GenerativeContentAdapter.from_settings(
            GenerationConfig(provider="openai"), Credentials(generation_api_key="sk-test"),
        )
        assert adapter.provider_id == "openai"


# ---------------------------------------------------------------------------
# Schema validation
# ---------------------------------------------------------------------------
class TestRequiredKeys:
    def test_top_level_missing(self) -> None:
        with pytest.raises(SchemaViolation) as exc:
            validate_required({"a": 1}, ["a", "b", "c"])
        assert exc.value.field == "b"

    def test_nested_missing(self) -> None:
        data = {"contact": {"name": "Dana"}}
        with pytest.raises(SchemaViolation) as exc:
            validate_required(data, ["contact.name", "contact.email"])
        assert exc.value.field == "contact.email"

    def test_list_elements_checked(self) -> None:
        data = {"rankings": [{"index": 0, "score": 5}, {"index": 1}]}
        with pytest.raises(SchemaViolation) as exc:
            validate_required(data, ["rankings[].index", "rankings[].score"])
        assert exc.value.field == "rankings[1].score"

    def test_list_expected_but_scalar(self) -> None:
        with pytest.raises(SchemaViolation) as exc:
            validate_required({"rankings": "none"}, ["rankings[].index"])
        assert exc.value.field == "rankings"

    def test_null_counts_as_missing(self) -> None:
        with pytest.raises(SchemaViolation):
            validate_required({"followUp": None}, ["followUp"])

    def test_all_present(self) -> None:
        validate_required({"a": {"b": [{"c": 0}]}}, ["a", "a.b", "a.b[].c"])

    def test_adapter_names_first_missing(self) -> None:
        provider = _provider('{"variations": [{"subject": "Hi"}]}')
        spec = _spec(required_keys=["variations", "variations[].subject", "variations[].body"])
        with pytest.raises(SchemaViolation, match="variations\\[0\\].body"):
            _adapter(provider).generate_structured(spec)


class TestBounds:
    def test_in_range(self) -> None:
        validate_bounds({"rankings": [{"score": 1}, {"score": 100}, {"score": 55.5}]},
                        {"rankings[].score": (1, 100)})

    def test_out_of_range(self) -> None:
        with pytest.raises(SchemaViolation) as exc:
            validate_bounds({"rankings": [{"score": 50}, {"score": 101}]},
                            {"rankings[].score": (1, 100)})
        assert exc.value.field == "rankings[1].score"

    @pytest.mark.parametrize("value", ["90", True, None, [1]])
    def test_non_numeric_rejected(self, value: object) -> None:
        with pytest.raises(SchemaViolation, match="must be numeric"):
            validate_bounds({"severity": value}, {"severity": (1, 10)})

    def test_absent_field_left_to_required_check(self) -> None:
        validate_bounds({}, {"severity": (1, 10)})
