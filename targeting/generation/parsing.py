"""Recovery ladder for JSON objects embedded in LLM output.

Each stage is a pure ``text -> ParseOutcome`` function. Stages run in order and
the first success wins; add a stage by passing a longer sequence to
``parse_structured``.
"""

import json
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from targeting.core.errors import UnparseableResponse

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


@dataclass(frozen=True)
class ParseOutcome:
    """Either a parsed object or the reason the stage could not produce one."""

    value: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.value is not None


ParseStage = Callable[[str], ParseOutcome]


def _load_object(text: str) -> ParseOutcome:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        return ParseOutcome(error=f"invalid JSON: {e.msg} at {e.pos}")
    if not isinstance(data, dict):
        return ParseOutcome(error=f"expected a JSON object, got {type(data).__name__}")
    return ParseOutcome(value=data)


def parse_direct(text: str) -> ParseOutcome:
    """The whole response is the object."""
    return _load_object(text.strip())


def parse_fenced(text: str) -> ParseOutcome:
    """The object sits inside a ``` fenced block, possibly after prose."""
    match = _FENCE_RE.search(text)
    if match is None:
        return ParseOutcome(error="no fenced code block")
    return _load_object(match.group(1).strip())


def parse_braced(text: str) -> ParseOutcome:
    """The first balanced top-level ``{...}`` substring is the object."""
    start = text.find("{")
    if start == -1:
        return ParseOutcome(error="no opening brace")
    end = _matching_brace(text, start)
    if end is None:
        return ParseOutcome(error="unbalanced braces")
    return _load_object(text[start : end + 1])


def _matching_brace(text: str, start: int) -> int | None:
    """Index of the brace closing ``text[start]``; braces inside strings are ignored."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


DEFAULT_STAGES: tuple[ParseStage, ...] = (parse_direct, parse_fenced, parse_braced)


def parse_structured(text: str, stages: Sequence[ParseStage] = DEFAULT_STAGES) -> dict[str, Any]:
    """Run the ladder and return the first parsed object.

    Raises:
        UnparseableResponse: If every stage fails; carries a raw snippet.
    """
    errors: list[str] = []
    for stage in stages:
        outcome = stage(text)
        if outcome.value is not None:
            return outcome.value
        errors.append(f"{stage.__name__}: {outcome.error}")
    msg = "No parse stage produced a JSON object (" + "; ".join(errors) + ")"
    raise UnparseableResponse(msg, raw_text=text)
