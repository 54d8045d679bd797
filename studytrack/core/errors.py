"""Error taxonomy for StudyTrack.

Only ``PersistenceWriteFailure`` is meant to reach the presentation layer;
the others are raised at component seams and handled inside the engine.
"""

from typing import Optional


class StudyTrackError(Exception):
    """Base class for all StudyTrack errors."""


class NoTaskSelected(StudyTrackError):
    """A timer start was attempted with no project selected."""

    def __init__(self, message: str = "Please select a project to study first!") -> None:
        super().__init__(message)


class SessionTooShort(StudyTrackError):
    """A finalized duration fell below the minimum session length."""

    def __init__(self, duration_ms: int, minimum_ms: int) -> None:
        super().__init__(f"Session of {duration_ms} ms is shorter than {minimum_ms} ms")
        self.duration_ms = duration_ms
        self.minimum_ms = minimum_ms


class InvalidPhaseTransition(StudyTrackError):
    """An operation was requested in a focus-cycle phase that forbids it."""

    def __init__(self, operation: str, phase: str) -> None:
        super().__init__(f"Cannot {operation} during the {phase} phase")
        self.operation = operation
        self.phase = phase


class PersistenceWriteFailure(StudyTrackError):
    """The persisted store rejected a write.

    In-memory state stays authoritative; the caller may retry by flushing.
    """

    def __init__(self, operation: str, cause: Optional[BaseException] = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to persist {operation}{detail}")
        self.operation = operation
        self.cause = cause
