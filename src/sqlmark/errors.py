"""Error types raised by the reference engine and its collaborators.

Every error carries a machine-readable ``error_code`` plus structured
``details`` so callers (CLI, UI glue) can render failures consistently.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class ErrorCode:
    """Constants for error codes."""

    STALE_REFERENCE = "stale_reference"
    UNRESOLVED_RANGE = "unresolved_range"
    DUPLICATE_MARKUP = "duplicate_markup"
    RANGE_OWNERSHIP = "range_ownership"
    UNKNOWN_REFERENCE = "unknown_reference"
    MALFORMED_DOCUMENT = "malformed_document"
    CONVERSION_TIMEOUT = "conversion_timeout"
    QUERY_EXECUTION_FAILED = "query_execution_failed"


@dataclass
class SqlmarkError(Exception):
    """Base exception class for all sqlmark errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"error": self.error_code, "message": self.message}
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


@dataclass
class DuplicateMarkupError(SqlmarkError):
    """A reference was registered under a markup that is already active."""

    error_code: str = field(default=ErrorCode.DUPLICATE_MARKUP)
    message: str = field(default="Markup is already registered")
    details: dict[str, Any] = field(default_factory=dict)
    markup: str | None = None

    def __post_init__(self) -> None:
        if self.markup is not None:
            self.details.setdefault("markup", self.markup)
            if self.message == "Markup is already registered":
                self.message = f"Markup {self.markup!r} is already registered"
        super().__post_init__()


@dataclass
class RangeOwnershipError(SqlmarkError):
    """A tracked range was claimed by a second reference."""

    error_code: str = field(default=ErrorCode.RANGE_OWNERSHIP)
    message: str = field(default="Tracked range already belongs to another reference")
    details: dict[str, Any] = field(default_factory=dict)
    range_id: str | None = None
    owner: str | None = None

    def __post_init__(self) -> None:
        if self.range_id is not None:
            self.details.setdefault("range_id", self.range_id)
        if self.owner is not None:
            self.details.setdefault("owner", self.owner)
        super().__post_init__()


@dataclass
class UnknownReferenceError(SqlmarkError):
    """An operation referred to a markup that is not registered."""

    error_code: str = field(default=ErrorCode.UNKNOWN_REFERENCE)
    message: str = field(default="Reference is not registered")
    details: dict[str, Any] = field(default_factory=dict)
    markup: str | None = None

    def __post_init__(self) -> None:
        if self.markup is not None:
            self.details.setdefault("markup", self.markup)
        super().__post_init__()


@dataclass
class UnresolvedRangeError(SqlmarkError):
    """The range provider no longer knows a range the caller relies on."""

    error_code: str = field(default=ErrorCode.UNRESOLVED_RANGE)
    message: str = field(default="Tracked range can no longer be resolved")
    details: dict[str, Any] = field(default_factory=dict)
    range_id: str | None = None

    def __post_init__(self) -> None:
        if self.range_id is not None:
            self.details.setdefault("range_id", self.range_id)
        super().__post_init__()


@dataclass
class MalformedDocumentError(SqlmarkError):
    """An exchange document failed structural validation."""

    error_code: str = field(default=ErrorCode.MALFORMED_DOCUMENT)
    message: str = field(default="Query document is malformed")
    details: dict[str, Any] = field(default_factory=dict)
    problems: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.problems:
            self.details.setdefault("problems", list(self.problems))
        super().__post_init__()


@dataclass
class ConversionTimeoutError(SqlmarkError):
    """The scratch surface never signalled readiness."""

    error_code: str = field(default=ErrorCode.CONVERSION_TIMEOUT)
    message: str = field(default="Conversion surface did not become ready in time")
    details: dict[str, Any] = field(default_factory=dict)
    timeout: float | None = None

    def __post_init__(self) -> None:
        if self.timeout is not None:
            self.details.setdefault("timeout", self.timeout)
        super().__post_init__()


@dataclass
class QueryExecutionError(SqlmarkError):
    """The execution backend rejected the query or could not be reached."""

    error_code: str = field(default=ErrorCode.QUERY_EXECUTION_FAILED)
    message: str = field(default="Query execution failed")
    details: dict[str, Any] = field(default_factory=dict)
    status_code: int | None = None

    def __post_init__(self) -> None:
        if self.status_code is not None:
            self.details.setdefault("status_code", self.status_code)
        super().__post_init__()


__all__ = [
    "ErrorCode",
    "SqlmarkError",
    "DuplicateMarkupError",
    "RangeOwnershipError",
    "UnknownReferenceError",
    "UnresolvedRangeError",
    "MalformedDocumentError",
    "ConversionTimeoutError",
    "QueryExecutionError",
]
