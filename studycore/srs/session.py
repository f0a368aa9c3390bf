"""Study session engine.

Owns the in-memory study sessions, enforces the session state machine and
derives progress and summary statistics. Every operation takes the current
instant as an argument; nothing here reads a clock or performs I/O.

States: active -> paused -> active, and active/paused -> abandoned,
active -> completed. Completed and abandoned are terminal.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from studycore.errors import InvalidAnswerError, InvalidSessionStateError, SessionNotFoundError
from studycore.srs.sm2 import QualityRating, round_half_up

logger = logging.getLogger(__name__)


class SessionStatus(Enum):
    """Lifecycle status of a study session."""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ABANDONED)


LEGAL_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.ACTIVE: frozenset(
        {SessionStatus.PAUSED, SessionStatus.COMPLETED, SessionStatus.ABANDONED}
    ),
    SessionStatus.PAUSED: frozenset({SessionStatus.ACTIVE, SessionStatus.ABANDONED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.ABANDONED: frozenset(),
}


@dataclass
class StudySession:
    """State of one study session. Durations are in milliseconds."""

    id: str
    deck_id: int
    start_time: datetime
    status: SessionStatus = SessionStatus.ACTIVE
    end_time: datetime | None = None
    paused_time: int = 0  # Cumulative time spent paused
    paused_at: datetime | None = None  # Start of the current pause

    total_cards: int = 0
    completed_cards: int = 0
    current_card_index: int = 0
    card_ids: list[int] = field(default_factory=list)

    correct_answers: int = 0
    total_response_time: int = 0
    quality_scores: list[QualityRating] = field(default_factory=list)

    # Passed through for the UI layer
    keyboard_shortcuts: bool = True
    auto_advance: bool = False


@dataclass(frozen=True)
class Progress:
    """Progress through a session's queue."""

    total_cards: int
    completed_cards: int
    current_card_index: int
    percentage: int
    remaining_cards: int


@dataclass(frozen=True)
class SessionSummary:
    """Statistics for a finished (or in-flight) session."""

    cards_studied: int
    total_time: int  # end_time - start_time, 0 while the session is open
    average_quality: float  # Mean quality ordinal (1-4), one decimal
    correct_answers: int
    session_date: datetime
    accuracy: float = 0.0
    paused_time: int = 0


def _elapsed_ms(start: datetime, end: datetime) -> int:
    return max(0, round_half_up((end - start).total_seconds() * 1000))


def generate_session_id() -> str:
    """Build a session id from the wall clock in ms and a random suffix."""
    return f"session-{time.time_ns() // 1_000_000}-{uuid.uuid4().hex[:12]}"


class SessionEngine:
    """Holds study sessions by id and applies every change to them.

    Callers only ever receive copies of a session. Mutations of a record are
    serialized by a lock so counters stay consistent if two callers race.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, StudySession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    # --- Lifecycle ---

    def create_session(
        self,
        deck_id: int,
        now: datetime,
        card_ids: Iterable[int] = (),
    ) -> str:
        """Start a new active session over ``card_ids`` and return its id."""
        queue = list(card_ids)
        with self._lock:
            session_id = generate_session_id()
            while session_id in self._sessions:
                session_id = generate_session_id()
            self._sessions[session_id] = StudySession(
                id=session_id,
                deck_id=deck_id,
                start_time=now,
                total_cards=len(queue),
                card_ids=queue,
            )

        logger.info("Created session %s for deck %d: %d cards", session_id, deck_id, len(queue))
        return session_id

    def add_cards(self, session_id: str, card_ids: Iterable[int]) -> int:
        """Append cards to a session's queue. Returns the new total."""
        extra = list(card_ids)
        with self._lock:
            session = self._get(session_id)
            if session.status.is_terminal:
                raise InvalidSessionStateError(session_id, session.status, "add cards")
            session.card_ids.extend(extra)
            session.total_cards += len(extra)
            return session.total_cards

    def pause_session(self, session_id: str, now: datetime) -> None:
        with self._lock:
            session = self._transition(session_id, SessionStatus.PAUSED)
            session.paused_at = now

    def resume_session(self, session_id: str, now: datetime) -> None:
        with self._lock:
            session = self._transition(session_id, SessionStatus.ACTIVE)
            self._close_pause(session, now)

    def complete_session(self, session_id: str, now: datetime) -> None:
        with self._lock:
            session = self._transition(session_id, SessionStatus.COMPLETED)
            session.end_time = now
        logger.info(
            "Completed session %s: %d/%d cards",
            session_id,
            session.completed_cards,
            session.total_cards,
        )

    def abandon_session(self, session_id: str, now: datetime) -> None:
        with self._lock:
            session = self._transition(session_id, SessionStatus.ABANDONED)
            self._close_pause(session, now)
            session.end_time = now
        logger.info("Abandoned session %s after %d cards", session_id, session.completed_cards)

    def delete_session(self, session_id: str) -> None:
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                raise SessionNotFoundError(session_id)

    def update_settings(
        self,
        session_id: str,
        keyboard_shortcuts: bool | None = None,
        auto_advance: bool | None = None,
    ) -> None:
        with self._lock:
            session = self._get(session_id)
            if keyboard_shortcuts is not None:
                session.keyboard_shortcuts = keyboard_shortcuts
            if auto_advance is not None:
                session.auto_advance = auto_advance

    # --- Answers ---

    def current_card(self, session_id: str) -> int | None:
        """Return the card id to study next, or None once the queue is done."""
        with self._lock:
            session = self._get(session_id)
            if session.current_card_index < len(session.card_ids):
                return session.card_ids[session.current_card_index]
            return None

    def record_answer(
        self,
        session_id: str,
        quality: QualityRating,
        response_time_ms: int,
    ) -> None:
        """Count an answer against the session and advance to the next card.

        Raises:
            SessionNotFoundError: unknown session id.
            InvalidSessionStateError: the session is not active.
            InvalidAnswerError: negative response time or no cards left.
        """
        if response_time_ms < 0:
            raise InvalidAnswerError(f"Invalid response time: {response_time_ms} (must not be negative)")

        with self._lock:
            session = self._get(session_id)
            if session.status is not SessionStatus.ACTIVE:
                raise InvalidSessionStateError(session_id, session.status, "record an answer")
            if session.completed_cards >= session.total_cards:
                raise InvalidAnswerError(
                    f"Session {session_id} has no cards left to answer "
                    f"({session.completed_cards}/{session.total_cards})"
                )

            session.completed_cards += 1
            session.current_card_index += 1
            session.quality_scores.append(quality)
            session.total_response_time += response_time_ms
            if quality.is_correct:
                session.correct_answers += 1

    # --- Reads ---

    def get_session(self, session_id: str) -> StudySession:
        """Return a detached copy of the session."""
        with self._lock:
            session = self._get(session_id)
            return replace(
                session,
                card_ids=list(session.card_ids),
                quality_scores=list(session.quality_scores),
            )

    def get_status(self, session_id: str) -> SessionStatus:
        with self._lock:
            return self._get(session_id).status

    def get_progress(self, session_id: str) -> Progress:
        with self._lock:
            session = self._get(session_id)
            total = session.total_cards
            completed = session.completed_cards
            percentage = round_half_up(completed / total * 100) if total > 0 else 0
            return Progress(
                total_cards=total,
                completed_cards=completed,
                current_card_index=session.current_card_index,
                percentage=percentage,
                remaining_cards=max(0, total - completed),
            )

    def get_estimated_time_remaining(self, session_id: str) -> int:
        """Extrapolate the mean response time over the cards still to study."""
        with self._lock:
            session = self._get(session_id)
            completed = session.completed_cards
            if completed == 0 or completed >= session.total_cards:
                return 0
            average = session.total_response_time / completed
            return round_half_up(average * (session.total_cards - completed))

    def get_session_summary(self, session_id: str) -> SessionSummary:
        with self._lock:
            session = self._get(session_id)
            scores = session.quality_scores
            if scores:
                mean = sum(q.ordinal for q in scores) / len(scores)
                average_quality = round_half_up(mean * 10) / 10
                accuracy = session.correct_answers / len(scores)
            else:
                average_quality = 0.0
                accuracy = 0.0

            total_time = 0
            if session.end_time is not None:
                total_time = _elapsed_ms(session.start_time, session.end_time)

            return SessionSummary(
                cards_studied=session.completed_cards,
                total_time=total_time,
                average_quality=average_quality,
                correct_answers=session.correct_answers,
                session_date=session.start_time,
                accuracy=accuracy,
                paused_time=session.paused_time,
            )

    # --- Internals (callers hold the lock) ---

    def _get(self, session_id: str) -> StudySession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def _transition(self, session_id: str, target: SessionStatus) -> StudySession:
        session = self._get(session_id)
        if target not in LEGAL_TRANSITIONS[session.status]:
            raise InvalidSessionStateError(session_id, session.status, f"move to {target.value}")
        logger.debug("Session %s: %s -> %s", session_id, session.status.value, target.value)
        session.status = target
        return session

    @staticmethod
    def _close_pause(session: StudySession, now: datetime) -> None:
        if session.paused_at is not None:
            session.paused_time += _elapsed_ms(session.paused_at, now)
            session.paused_at = None
