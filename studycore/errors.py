"""Exceptions raised by the scheduling core and its collaborators."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from studycore.srs.sm2 import CardSchedule


class StudyError(Exception):
    """Base class for every error raised by this package."""


class ScheduleInvariantError(StudyError):
    """A scheduling input broke a contract the caller was meant to uphold."""


class SessionNotFoundError(StudyError, KeyError):
    """An operation referenced a session id the engine does not hold."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Session {self.session_id} not found"


class InvalidSessionStateError(StudyError):
    """The session is not in a status that allows the requested operation."""

    def __init__(self, session_id: str, current: Any, requested: Any) -> None:
        super().__init__(session_id, current, requested)
        self.session_id = session_id
        self.current = current
        self.requested = requested

    def __str__(self) -> str:
        return (
            f"Invalid session state: session {self.session_id} is "
            f"{self.current.value}, cannot {self.requested}"
        )


class InvalidAnswerError(StudyError, ValueError):
    """An answer could not be recorded as submitted."""


class PersistenceError(StudyError):
    """Saving an updated schedule failed after the answer was recorded.

    The session counters already include the answer. ``schedule`` holds the
    computed schedule so the caller can retry the save.
    """

    def __init__(self, message: str, schedule: CardSchedule) -> None:
        super().__init__(message)
        self.schedule = schedule
