"""Study flow orchestrator.

Coordinates the due queue, the session engine, the SM-2 scheduler and the
schedule store into one study flow. An answer always counts against the
session once it is given; if the updated schedule cannot be saved it is
kept as a pending save and ``PersistenceError`` is raised so the caller
can retry the save without asking the learner again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from studycore.config import settings
from studycore.errors import InvalidAnswerError, PersistenceError
from studycore.srs.queue import ReviewQueue, build_queue
from studycore.srs.session import SessionEngine
from studycore.srs.sm2 import CardSchedule, QualityRating, calculate_next_review, new_schedule
from studycore.srs.store import ScheduleStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingSave:
    """A reviewed card whose schedule and review log still have to reach the store."""

    deck_id: int
    before: CardSchedule
    schedule: CardSchedule
    quality: QualityRating
    response_time_ms: int


class StudyService:
    """Runs study sessions against the schedule store."""

    def __init__(self, engine: SessionEngine) -> None:
        self.engine = engine
        self._pending: dict[str, list[PendingSave]] = {}

    async def start(
        self,
        db: AsyncSession,
        deck_id: int,
        now: datetime,
        limit: int | None = None,
    ) -> tuple[str, ReviewQueue]:
        """Queue the deck's due cards and open a session over them."""
        queue = await build_queue(db, deck_id, now, limit=limit)
        session_id = self.engine.create_session(deck_id, now, card_ids=queue.card_ids)
        return session_id, queue

    async def answer(
        self,
        db: AsyncSession,
        session_id: str,
        card_id: int,
        quality: QualityRating,
        response_time_ms: int,
        now: datetime,
    ) -> CardSchedule:
        """Record an answer for the session's current card and save the new schedule.

        Args:
            db: Database session.
            session_id: The session being studied.
            card_id: The card that was answered; must be the current card.
            quality: The learner's rating.
            response_time_ms: Time taken to answer.
            now: When the answer was given.

        Returns:
            The card's updated schedule.

        Raises:
            PersistenceError: the answer was recorded but the schedule was not
                saved; it is kept in ``pending(session_id)``.
        """
        expected = self.engine.current_card(session_id)
        if expected != card_id:
            raise InvalidAnswerError(f"Card {card_id} is not the current card of session {session_id}")

        store = ScheduleStore(db)
        current = await store.get(card_id)
        if current is None:
            current = new_schedule(card_id, now, ease_factor=settings.default_ease_factor)
        updated = calculate_next_review(current, quality, now)

        self.engine.record_answer(session_id, quality, response_time_ms)

        deck_id = self.engine.get_session(session_id).deck_id
        try:
            await store.upsert(updated, deck_id)
            store.log_review(current, updated, deck_id, quality, response_time_ms, session_id=session_id)
            await store.commit()
        except SQLAlchemyError as exc:
            await store.rollback()
            self._pending.setdefault(session_id, []).append(
                PendingSave(deck_id, current, updated, quality, response_time_ms)
            )
            logger.warning("Failed to save schedule for card %d in session %s: %s", card_id, session_id, exc)
            raise PersistenceError(f"Could not save schedule for card {card_id}", updated) from exc

        return updated

    def pending(self, session_id: str) -> list[CardSchedule]:
        """Schedules of this session that have not been saved yet."""
        return [p.schedule for p in self._pending.get(session_id, [])]

    async def retry_pending(self, db: AsyncSession, session_id: str) -> int:
        """Try to save the pending schedules of a session again, with their review logs.

        Returns the number saved. Raises PersistenceError if the store still
        fails; the schedules stay pending.
        """
        pending = self._pending.get(session_id, [])
        if not pending:
            return 0

        store = ScheduleStore(db)
        try:
            for item in pending:
                await store.upsert(item.schedule, item.deck_id)
                store.log_review(
                    item.before,
                    item.schedule,
                    item.deck_id,
                    item.quality,
                    item.response_time_ms,
                    session_id=session_id,
                )
            await store.commit()
        except SQLAlchemyError as exc:
            await store.rollback()
            logger.warning("Retry of %d pending saves for session %s failed: %s", len(pending), session_id, exc)
            raise PersistenceError(
                f"Could not save {len(pending)} pending schedules", pending[0].schedule
            ) from exc

        del self._pending[session_id]
        logger.info("Saved %d pending schedules for session %s", len(pending), session_id)
        return len(pending)
