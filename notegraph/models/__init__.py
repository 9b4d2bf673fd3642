"""Shared error types."""

from notegraph.models.errors import (
    AnalysisInProgressError,
    ConfirmationRequiredError,
    ErrorCode,
    ExtractionError,
    HierarchyCycleError,
    NoteGraphError,
    PersistenceError,
    RecordNotFoundError,
    RuleViolationError,
)

__all__ = [
    "ErrorCode",
    "NoteGraphError",
    "ExtractionError",
    "AnalysisInProgressError",
    "RuleViolationError",
    "HierarchyCycleError",
    "ConfirmationRequiredError",
    "RecordNotFoundError",
    "PersistenceError",
]
