"""Persisted SM-2 scheduling state of a card."""

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studycore.models.base import Base, TimestampMixin


class CardScheduleRecord(Base, TimestampMixin):
    """Scheduling row keyed by the card id of the external card store."""

    __tablename__ = "card_schedules"

    card_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)
    deck_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    ease_factor: Mapped[float] = mapped_column(Float, nullable=False, default=2.5)
    interval: Mapped[float | None] = mapped_column(Float, nullable=True)  # Days
    repetitions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_review_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    last_review_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    review_logs: Mapped[list["ReviewLog"]] = relationship(back_populates="schedule")  # type: ignore[name-defined] # noqa: F821
