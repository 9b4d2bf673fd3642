"""
Unified error taxonomy for the NoteGraph engine.

Every failure the engine reports carries a stable error code, a
human-readable message and an optional hint. None of them is retryable:
failures are terminal for the invocation that raised them.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from notegraph.kg.consistency import ImpactReport


class ErrorCode(str, Enum):
    """Standardized error codes."""

    # Extraction errors
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    ANALYSIS_IN_PROGRESS = "ANALYSIS_IN_PROGRESS"

    # Validation errors (rule gate, hierarchy)
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Destructive operations
    CONFIRMATION_REQUIRED = "CONFIRMATION_REQUIRED"

    # Resource errors
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"


class NoteGraphError(Exception):
    """
    Base exception for engine failures.

    Attributes:
        code: Standardized error code
        message: Human-readable error message
        detail: Optional technical details for debugging
        hint: Optional suggestion for resolving the error
        retryable: Always False; the engine never retries
    """

    code: ErrorCode = ErrorCode.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        detail: str | None = None,
        hint: str | None = None,
    ) -> None:
        self.message = message
        self.detail = detail
        self.hint = hint
        self.retryable = False
        super().__init__(message)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        """
        Convert error to dictionary format for display layers.

        Returns:
            Dictionary with 'error' key containing error details
        """
        error_dict: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.detail:
            error_dict["detail"] = self.detail
        if self.hint:
            error_dict["hint"] = self.hint
        return {"error": error_dict}


class ExtractionError(NoteGraphError):
    """The external extractor failed or returned empty/malformed output."""

    code = ErrorCode.EXTRACTION_FAILED


class AnalysisInProgressError(NoteGraphError):
    """A second analysis was started while one is still in flight."""

    code = ErrorCode.ANALYSIS_IN_PROGRESS


class RuleViolationError(NoteGraphError):
    """An active automation rule rejected a save."""

    code = ErrorCode.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        rule_code: str,
        field: str | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, detail=f"rule={rule_code}", hint=hint)
        self.rule_code = rule_code
        self.field = field


class HierarchyCycleError(NoteGraphError):
    """A parent assignment would make an entity its own ancestor."""

    code = ErrorCode.VALIDATION_ERROR


class ConfirmationRequiredError(NoteGraphError):
    """A destructive operation was executed without explicit confirmation."""

    code = ErrorCode.CONFIRMATION_REQUIRED

    def __init__(self, report: ImpactReport) -> None:
        super().__init__(
            report.message(),
            hint="Archive the entity instead" if report.suggest_archive else None,
        )
        self.report = report


class RecordNotFoundError(NoteGraphError, LookupError):
    """A mutation referenced a record id that does not exist."""

    code = ErrorCode.RECORD_NOT_FOUND

    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class PersistenceError(NoteGraphError):
    """Saving a collection to the key-value store failed."""

    code = ErrorCode.PERSISTENCE_FAILED
