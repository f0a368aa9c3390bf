"""Due card selection for study sessions.

Picks the cards whose next review date has arrived, most overdue first, and
prepares the queue a session works through.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from studycore.config import settings
from studycore.srs.sm2 import CardSchedule
from studycore.srs.store import ScheduleStore

logger = logging.getLogger(__name__)


def is_due(schedule: CardSchedule, now: datetime) -> bool:
    """Return True if the card should be reviewed on the day of ``now``.

    Compared at day resolution: a card due later today is already due.
    A schedule without a next review date has never been studied and is due.
    """
    if schedule.next_review_date is None:
        return True
    return schedule.next_review_date.date() <= now.date()


def select_due(schedules: Iterable[CardSchedule], now: datetime) -> list[int]:
    """Return the ids of the due cards, most overdue first.

    Ties on the review date are broken by card id so the order is
    reproducible.
    """
    due = [s for s in schedules if is_due(s, now)]
    # Unscheduled cards sort first without comparing against a dated one
    due.sort(key=lambda s: (s.next_review_date is not None, s.next_review_date or now, s.card_id))
    return [s.card_id for s in due]


@dataclass
class ReviewQueue:
    """A prepared queue of card ids for a study session."""

    deck_id: int
    card_ids: list[int] = field(default_factory=list)
    total_due: int = 0  # Due cards before the session limit was applied

    @property
    def total(self) -> int:
        return len(self.card_ids)


async def build_queue(
    db: AsyncSession,
    deck_id: int,
    now: datetime,
    limit: int | None = None,
) -> ReviewQueue:
    """Build the study queue for a deck.

    Args:
        db: Database session.
        deck_id: The deck to study.
        now: Reference instant for due selection.
        limit: Maximum cards in the queue (defaults to the configured
            per-session maximum).

    Returns:
        A ReviewQueue of due card ids, most overdue first.
    """
    limit = settings.max_cards_per_session if limit is None else limit
    store = ScheduleStore(db)
    schedules = await store.list_for_deck(deck_id)
    due_ids = select_due(schedules, now)

    queue = ReviewQueue(deck_id=deck_id, card_ids=due_ids[:limit], total_due=len(due_ids))
    logger.info(
        "Built queue for deck %d: %d due, %d queued",
        deck_id,
        queue.total_due,
        queue.total,
    )
    return queue
