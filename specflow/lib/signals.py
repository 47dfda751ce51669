"""
Failure signals and structured operation results.

Engine operations never raise for expected failures. They return an Outcome
carrying a Signal, a one-line message and a remediation hint. The only
exception that escapes the engine is StorageUnavailable.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Signal(Enum):
    """Every failure kind the engine reports.

    Values are the names printed by the CLI.
    """

    PHASE_OUT_OF_ORDER = "PhaseOutOfOrder"
    ARTIFACT_NOT_APPROVED = "ArtifactNotApproved"
    OPEN_QUESTIONS_REMAIN = "OpenQuestionsRemain"
    ANALYSIS_NOT_PASSING = "AnalysisNotPassing"
    STALE_REVISION = "StaleRevision"
    COVERAGE_GAP = "CoverageGap"
    DANGLING_REFERENCE = "DanglingReference"
    CIRCULAR_DEPENDENCY = "CircularDependency"
    FEATURE_NOT_FOUND = "FeatureNotFound"
    STORAGE_UNAVAILABLE = "StorageUnavailable"

    ARTIFACT_NOT_FOUND = "ArtifactNotFound"
    FEATURE_EXISTS = "FeatureExists"
    INVALID_FEATURE_ID = "InvalidFeatureId"
    FEATURE_ARCHIVED = "FeatureArchived"
    LOCK_TIMEOUT = "LockTimeout"
    QUESTION_NOT_FOUND = "QuestionNotFound"
    EMPTY_TEXT = "EmptyText"


class StorageUnavailable(Exception):
    """Persisted state could not be read or written.

    Aborts the current operation. Writes are atomic per file, so whatever was
    on disk before the operation is still intact.
    """

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message + (f" ({path})" if path else ""))


@dataclass
class Outcome:
    """Structured result of an engine operation."""
    ok: bool
    signal: Signal | None = None
    message: str = ""
    hint: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, message: str = "", **data) -> "Outcome":
        return cls(ok=True, message=message, data=data)

    @classmethod
    def failure(cls, signal: Signal, message: str, hint: str = "", **data) -> "Outcome":
        return cls(ok=False, signal=signal, message=message, hint=hint, data=data)

    def render(self) -> str:
        """One-line form for the CLI."""
        if self.ok:
            return self.message
        line = f"{self.signal.value}: {self.message}"
        if self.hint:
            line += f" — {self.hint}"
        return line
