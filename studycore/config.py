from datetime import UTC, datetime
from pathlib import Path

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Keeps datetimes naive so they stay compatible with SQLite (which doesn't
    store tz info) and comparable with stored schedule dates.
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "Study Core"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'studycore.db'}"
    max_cards_per_session: int = 20
    default_ease_factor: float = 2.5
    daily_cards_goal: int = 20
    daily_time_goal_ms: int = 30 * 60 * 1000
    debug: bool = False

    model_config = {"env_prefix": "STUDYCORE_", "env_file": ".env"}


settings = Settings()
