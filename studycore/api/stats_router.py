"""API routes for deck and card scheduling statistics."""

import logging
from collections.abc import Iterable
from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import ColumnElement, and_, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from studycore.api.schemas import (
    CardStatsResponse,
    DailyProgressResponse,
    DeckStatsResponse,
    ReviewHistoryItem,
)
from studycore.config import settings, utcnow
from studycore.database import get_session
from studycore.models.review_log import ReviewLog
from studycore.srs.queue import select_due
from studycore.srs.sm2 import QualityRating, round_half_up
from studycore.srs.store import ScheduleStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stats", tags=["stats"])

MATURE_INTERVAL_DAYS = 21
RETENTION_WINDOW_DAYS = 30


def _average_quality(qualities: Iterable[str]) -> float | None:
    """Mean quality ordinal (1-4) rounded to one decimal, None without reviews."""
    ordinals = [QualityRating(q).ordinal for q in qualities]
    if not ordinals:
        return None
    return round_half_up(sum(ordinals) / len(ordinals) * 10) / 10


def _difficulty(average_quality: float | None) -> str | None:
    if average_quality is None:
        return None
    if average_quality >= 3.5:
        return "easy"
    if average_quality >= 2.5:
        return "medium"
    return "hard"


@router.get("/daily", response_model=DailyProgressResponse)
async def get_daily_progress(
    day: date | None = None,
    deck_id: int | None = None,
    db: AsyncSession = Depends(get_session),
) -> DailyProgressResponse:
    """Get the reviews done on one day (today by default), optionally for one deck."""
    day = day or utcnow().date()
    start = datetime.combine(day, time.min)
    criteria = [ReviewLog.reviewed_at >= start, ReviewLog.reviewed_at < start + timedelta(days=1)]
    if deck_id is not None:
        criteria.append(ReviewLog.deck_id == deck_id)

    stmt = select(ReviewLog.card_id, ReviewLog.quality, ReviewLog.response_time_ms).where(and_(*criteria))
    reviews = (await db.execute(stmt)).all()

    cards_studied = len({card_id for card_id, _, _ in reviews})
    time_spent = sum(ms for _, _, ms in reviews)

    return DailyProgressResponse(
        day=day,
        reviews=len(reviews),
        cards_studied=cards_studied,
        time_spent_ms=time_spent,
        average_quality=_average_quality(q for _, q, _ in reviews),
        cards_goal=settings.daily_cards_goal,
        time_goal_ms=settings.daily_time_goal_ms,
        goal_reached=cards_studied >= settings.daily_cards_goal,
    )


@router.get("/card/{card_id}", response_model=CardStatsResponse)
async def get_card_stats(
    card_id: int,
    db: AsyncSession = Depends(get_session),
) -> CardStatsResponse:
    """Get review statistics and the current schedule of a card."""
    store = ScheduleStore(db)
    schedule = await store.get(card_id)
    history = await store.history(card_id)
    if schedule is None and not history:
        raise HTTPException(status_code=404, detail=f"Card {card_id} has no schedule")

    average_quality = _average_quality(log.quality for log in history)
    average_response_time = None
    if history:
        average_response_time = round_half_up(sum(log.response_time_ms for log in history) / len(history))

    return CardStatsResponse(
        card_id=card_id,
        total_reviews=len(history),
        average_quality=average_quality,
        average_response_time_ms=average_response_time,
        last_reviewed_at=history[-1].reviewed_at if history else None,
        streak_days=await _calculate_streak(db, utcnow(), ReviewLog.card_id == card_id),
        difficulty=_difficulty(average_quality),
        ease_factor=schedule.ease_factor if schedule else None,
        interval=schedule.interval if schedule else None,
        repetitions=schedule.repetitions if schedule else None,
        next_review_date=schedule.next_review_date if schedule else None,
    )


@router.get("/card/{card_id}/history", response_model=list[ReviewHistoryItem])
async def get_card_history(
    card_id: int,
    db: AsyncSession = Depends(get_session),
) -> list[ReviewHistoryItem]:
    """Get every logged review of a card, oldest first."""
    history = await ScheduleStore(db).history(card_id)
    return [ReviewHistoryItem.model_validate(log) for log in history]


@router.get("/{deck_id}", response_model=DeckStatsResponse)
async def get_deck_stats(
    deck_id: int,
    db: AsyncSession = Depends(get_session),
) -> DeckStatsResponse:
    """Get overall scheduling statistics for a deck."""
    now = utcnow()
    schedules = await ScheduleStore(db).list_for_deck(deck_id)

    cards_due = len(select_due(schedules, now))
    cards_new = sum(1 for s in schedules if s.last_review_date is None)
    cards_mature = sum(1 for s in schedules if (s.interval or 0) >= MATURE_INTERVAL_DAYS)

    stmt = select(ReviewLog.quality, ReviewLog.reviewed_at).where(ReviewLog.deck_id == deck_id)
    reviews = (await db.execute(stmt)).all()

    average_quality = _average_quality(q for q, _ in reviews)

    # Retention: share of Good/Easy answers over the recent window
    cutoff = now - timedelta(days=RETENTION_WINDOW_DAYS)
    recent = [QualityRating(q) for q, reviewed_at in reviews if reviewed_at >= cutoff]
    retention_rate = None
    if recent:
        retention_rate = round(sum(1 for q in recent if q.is_correct) / len(recent), 3)

    streak_days = await _calculate_streak(db, now, ReviewLog.deck_id == deck_id)

    return DeckStatsResponse(
        total_cards=len(schedules),
        cards_due=cards_due,
        cards_new=cards_new,
        cards_mature=cards_mature,
        average_quality=average_quality,
        retention_rate=retention_rate,
        streak_days=streak_days,
        total_reviews=len(reviews),
    )


async def _calculate_streak(
    db: AsyncSession,
    now: datetime,
    *criteria: ColumnElement[bool],
) -> int:
    """Calculate the number of consecutive days, ending today, with matching reviews."""
    stmt = (
        select(distinct(func.date(ReviewLog.reviewed_at)))
        .where(and_(ReviewLog.reviewed_at <= now, *criteria))
        .order_by(func.date(ReviewLog.reviewed_at).desc())
    )
    result = await db.execute(stmt)
    dates = [row[0] for row in result.all()]

    if not dates:
        return 0

    today = now.date()
    streak = 0

    for i, review_date in enumerate(dates):
        expected = today - timedelta(days=i)
        if str(review_date) == str(expected):
            streak += 1
        else:
            break

    return streak
