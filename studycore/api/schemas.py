"""Pydantic schemas for API request/response models."""

from datetime import date, datetime

from pydantic import BaseModel, Field

from studycore.srs.sm2 import QualityRating

# --- Session ---


class SessionStartResponse(BaseModel):
    """Response when starting a new study session."""

    session_id: str
    deck_id: int
    total_cards: int
    total_due: int


class NextCardResponse(BaseModel):
    """The card to study next with its current scheduling state."""

    card_id: int
    ease_factor: float
    interval: float | None
    repetitions: int
    remaining: int


class AnswerRequest(BaseModel):
    """Request to submit an answer for the current card."""

    card_id: int
    quality: QualityRating
    time_ms: int = Field(ge=0)


class AnswerResponse(BaseModel):
    """Response after submitting an answer with the card's new schedule."""

    card_id: int
    ease_factor: float
    interval: float
    repetitions: int
    next_review_date: datetime
    remaining: int
    queue_finished: bool


class SessionStateResponse(BaseModel):
    session_id: str
    status: str


class ProgressResponse(BaseModel):
    """Progress through the session's queue."""

    total_cards: int
    completed_cards: int
    current_card_index: int
    percentage: int
    remaining_cards: int
    estimated_time_remaining_ms: int


class SessionSummaryResponse(BaseModel):
    """Statistics for a study session."""

    cards_studied: int
    total_time_ms: int
    average_quality: float
    correct_answers: int
    accuracy: float
    paused_time_ms: int
    session_date: datetime


class RetryResponse(BaseModel):
    saved: int


# --- Stats ---


class DeckStatsResponse(BaseModel):
    """Overall scheduling statistics for a deck."""

    total_cards: int
    cards_due: int
    cards_new: int
    cards_mature: int  # interval >= 21 days
    average_quality: float | None
    retention_rate: float | None  # share of Good/Easy over the last 30 days
    streak_days: int
    total_reviews: int


class ReviewHistoryItem(BaseModel):
    """One logged review of a card."""

    quality: QualityRating
    response_time_ms: int
    ease_factor_before: float
    ease_factor_after: float
    interval_before: float | None
    interval_after: float
    reviewed_at: datetime
    session_id: str | None

    model_config = {"from_attributes": True}


class CardStatsResponse(BaseModel):
    """Review statistics and current schedule of a single card."""

    card_id: int
    total_reviews: int
    average_quality: float | None
    average_response_time_ms: int | None
    last_reviewed_at: datetime | None
    streak_days: int
    difficulty: str | None  # easy, medium or hard from the average quality
    ease_factor: float | None
    interval: float | None
    repetitions: int | None
    next_review_date: datetime | None


class DailyProgressResponse(BaseModel):
    """Study activity for one day against the daily goals."""

    day: date
    reviews: int
    cards_studied: int  # distinct cards
    time_spent_ms: int
    average_quality: float | None
    cards_goal: int
    time_goal_ms: int
    goal_reached: bool
