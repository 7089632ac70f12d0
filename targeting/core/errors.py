"""Error taxonomy shared by every targeting component.

Each error carries a stable ``code`` so the control surface can turn it into a
structured response instead of a traceback.
"""

from typing import Any


class TargetingError(Exception):
    """Base class for all targeting pipeline failures."""

    code = "targeting_error"

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": str(self)}


class ConfigurationError(TargetingError):
    """Missing ICP or provider credentials. Fatal, raised pre-flight."""

    code = "configuration_error"

    def __init__(self, message: str, reason: str = "invalid_configuration") -> None:
        super().__init__(message)
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "reason": self.reason}


class UpstreamUnavailable(TargetingError):
    """Network or HTTP failure from the directory or the generation service."""

    code = "upstream_unavailable"

    def __init__(self, message: str, service: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.service = service
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "service": self.service, "status_code": self.status_code}


class UnparseableResponse(TargetingError):
    """Generation output that no parse stage could turn into an object."""

    code = "unparseable_response"
    SNIPPET_CHARS = 300

    def __init__(self, message: str, raw_text: str) -> None:
        super().__init__(message)
        self.snippet = raw_text[: self.SNIPPET_CHARS]

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "snippet": self.snippet}


class SchemaViolation(TargetingError):
    """Parsed object missing a required field or holding an out-of-range value."""

    code = "schema_violation"

    def __init__(self, message: str, field: str) -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "field": self.field}


class PersistenceFailure(TargetingError):
    """Durable-store read or write failed."""

    code = "persistence_failure"


class VersionConflict(PersistenceFailure):
    """A mission write carried a stale version and was rejected."""

    code = "version_conflict"

    def __init__(self, message: str, expected: int | None, actual: int | None) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "expected": self.expected, "actual": self.actual}


class MissionStateError(TargetingError):
    """Operation not allowed for the mission's current phase or inputs."""

    code = "mission_state_error"

    def __init__(self, message: str, reason: str) -> None:
        super().__init__(message)
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "reason": self.reason}
