"""SQLAlchemy ORM models for the study database."""

from studycore.models.base import Base
from studycore.models.card_schedule import CardScheduleRecord
from studycore.models.review_log import ReviewLog

__all__ = ["Base", "CardScheduleRecord", "ReviewLog"]
