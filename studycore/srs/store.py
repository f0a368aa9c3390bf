"""Card schedule store backed by the async SQLAlchemy session.

Translates between ``CardScheduleRecord`` rows and ``CardSchedule`` values.
The scheduling core never touches the database; callers load schedules
through this store and hand updated values back to it.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studycore.config import settings
from studycore.models.card_schedule import CardScheduleRecord
from studycore.models.review_log import ReviewLog
from studycore.srs.sm2 import CardSchedule, QualityRating, new_schedule

logger = logging.getLogger(__name__)


def to_schedule(record: CardScheduleRecord) -> CardSchedule:
    return CardSchedule(
        card_id=record.card_id,
        ease_factor=record.ease_factor,
        interval=record.interval,
        repetitions=record.repetitions,
        next_review_date=record.next_review_date,
        last_review_date=record.last_review_date,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class ScheduleStore:
    """Reads and writes card schedules within one database session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, card_id: int) -> CardSchedule | None:
        record = await self.db.get(CardScheduleRecord, card_id)
        return to_schedule(record) if record is not None else None

    async def list_for_deck(self, deck_id: int) -> list[CardSchedule]:
        stmt = (
            select(CardScheduleRecord)
            .where(CardScheduleRecord.deck_id == deck_id)
            .order_by(CardScheduleRecord.card_id.asc())
        )
        result = await self.db.execute(stmt)
        return [to_schedule(r) for r in result.scalars().all()]

    async def upsert(self, schedule: CardSchedule, deck_id: int) -> None:
        """Insert or update the row for ``schedule.card_id``.

        Changes are flushed, not committed; call ``commit`` to make them durable.
        """
        record = await self.db.get(CardScheduleRecord, schedule.card_id)
        if record is None:
            record = CardScheduleRecord(card_id=schedule.card_id, deck_id=deck_id)
            self.db.add(record)

        record.ease_factor = schedule.ease_factor
        record.interval = schedule.interval
        record.repetitions = schedule.repetitions
        record.next_review_date = schedule.next_review_date
        record.last_review_date = schedule.last_review_date
        await self.db.flush()

    async def delete(self, card_id: int) -> bool:
        """Delete a card's schedule. Returns False if there was none."""
        record = await self.db.get(CardScheduleRecord, card_id)
        if record is None:
            return False
        await self.db.delete(record)
        await self.db.flush()
        return True

    async def enroll(self, card_id: int, deck_id: int, now: datetime) -> CardSchedule:
        """Seed a default schedule for a card, or return the existing one."""
        existing = await self.get(card_id)
        if existing is not None:
            return existing

        schedule = new_schedule(card_id, now, ease_factor=settings.default_ease_factor)
        await self.upsert(schedule, deck_id)
        logger.debug("Enrolled card %d in deck %d", card_id, deck_id)
        return schedule

    def log_review(
        self,
        before: CardSchedule,
        after: CardSchedule,
        deck_id: int,
        quality: QualityRating,
        response_time_ms: int,
        session_id: str | None = None,
    ) -> None:
        self.db.add(
            ReviewLog(
                card_id=after.card_id,
                deck_id=deck_id,
                session_id=session_id,
                quality=quality.value,
                response_time_ms=response_time_ms,
                ease_factor_before=before.ease_factor,
                ease_factor_after=after.ease_factor,
                interval_before=before.interval,
                interval_after=after.interval,
                reviewed_at=after.last_review_date,
            )
        )

    async def history(self, card_id: int) -> list[ReviewLog]:
        """Return the card's review log, oldest first."""
        stmt = (
            select(ReviewLog)
            .where(ReviewLog.card_id == card_id)
            .order_by(ReviewLog.reviewed_at.asc(), ReviewLog.id.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()
