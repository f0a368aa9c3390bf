from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studycore.config import utcnow
from studycore.models.base import Base


class ReviewLog(Base):
    __tablename__ = "review_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    card_id: Mapped[int] = mapped_column(ForeignKey("card_schedules.card_id"), nullable=False)
    deck_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    quality: Mapped[str] = mapped_column(String(10), nullable=False)  # again, hard, good, easy
    response_time_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    ease_factor_before: Mapped[float] = mapped_column(Float, nullable=False)
    ease_factor_after: Mapped[float] = mapped_column(Float, nullable=False)
    interval_before: Mapped[float | None] = mapped_column(Float, nullable=True)
    interval_after: Mapped[float] = mapped_column(Float, nullable=False)
    reviewed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    schedule: Mapped["CardScheduleRecord"] = relationship(back_populates="review_logs")  # type: ignore[name-defined] # noqa: F821
