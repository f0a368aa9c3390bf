"""FastAPI application entry point and configuration."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from sqlalchemy import text

from studycore.api.session_router import router as session_router
from studycore.api.stats_router import router as stats_router
from studycore.config import settings
from studycore.database import async_session, engine
from studycore.models import Base
from studycore.srs.session import SessionEngine
from studycore.srs.study import StudyService


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize database on startup and cleanup on shutdown."""
    if settings.database_url.startswith("sqlite"):
        Path(__file__).resolve().parent.parent.joinpath("data").mkdir(exist_ok=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Spaced repetition scheduling and study sessions for flashcard decks",
    version="0.1.0",
    lifespan=lifespan,
)

app.state.study_service = StudyService(SessionEngine())

app.include_router(session_router)
app.include_router(stats_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Check database connectivity and return status."""
    async with async_session() as session:
        await session.execute(text("SELECT 1"))
    return {"status": "ok"}
