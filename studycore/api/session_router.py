"""API routes for study sessions."""

import contextlib
import logging
from collections.abc import Iterator

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from studycore.api.schemas import (
    AnswerRequest,
    AnswerResponse,
    NextCardResponse,
    ProgressResponse,
    RetryResponse,
    SessionStartResponse,
    SessionStateResponse,
    SessionSummaryResponse,
)
from studycore.config import settings, utcnow
from studycore.database import get_session
from studycore.errors import (
    InvalidAnswerError,
    InvalidSessionStateError,
    PersistenceError,
    SessionNotFoundError,
)
from studycore.srs.session import SessionEngine, SessionStatus
from studycore.srs.sm2 import new_schedule
from studycore.srs.store import ScheduleStore
from studycore.srs.study import StudyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/session", tags=["session"])


def get_study_service(request: Request) -> StudyService:
    """Return the study service attached to the application."""
    return request.app.state.study_service


@contextlib.contextmanager
def _session_errors() -> Iterator[None]:
    try:
        yield
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidSessionStateError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except InvalidAnswerError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(
            status_code=503,
            detail={"message": str(exc), "card_id": exc.schedule.card_id, "pending": True},
        ) from exc


def _state(engine: SessionEngine, session_id: str) -> SessionStateResponse:
    return SessionStateResponse(session_id=session_id, status=engine.get_status(session_id).value)


@router.post("/start", response_model=SessionStartResponse)
async def session_start(
    deck_id: int,
    limit: int | None = None,
    db: AsyncSession = Depends(get_session),
    service: StudyService = Depends(get_study_service),
) -> SessionStartResponse:
    """Start a new study session over the deck's due cards."""
    now = utcnow()
    session_id, queue = await service.start(db, deck_id, now, limit=limit)

    if queue.total == 0:
        service.engine.delete_session(session_id)
        raise HTTPException(status_code=404, detail="No cards due for review")

    return SessionStartResponse(
        session_id=session_id,
        deck_id=deck_id,
        total_cards=queue.total,
        total_due=queue.total_due,
    )


@router.get("/next/{session_id}", response_model=NextCardResponse)
async def session_next(
    session_id: str,
    db: AsyncSession = Depends(get_session),
    service: StudyService = Depends(get_study_service),
) -> NextCardResponse:
    """Get the next card in the session."""
    with _session_errors():
        status = service.engine.get_status(session_id)
        if status is not SessionStatus.ACTIVE:
            raise InvalidSessionStateError(session_id, status, "show the next card")
        card_id = service.engine.current_card(session_id)
        progress = service.engine.get_progress(session_id)

    if card_id is None:
        raise HTTPException(status_code=410, detail="No more cards in session")

    schedule = await ScheduleStore(db).get(card_id)
    if schedule is None:
        schedule = new_schedule(card_id, utcnow(), ease_factor=settings.default_ease_factor)

    return NextCardResponse(
        card_id=card_id,
        ease_factor=schedule.ease_factor,
        interval=schedule.interval,
        repetitions=schedule.repetitions,
        remaining=progress.remaining_cards,
    )


@router.post("/answer/{session_id}", response_model=AnswerResponse)
async def session_answer(
    session_id: str,
    request: AnswerRequest,
    db: AsyncSession = Depends(get_session),
    service: StudyService = Depends(get_study_service),
) -> AnswerResponse:
    """Submit an answer for the current card."""
    with _session_errors():
        schedule = await service.answer(
            db,
            session_id,
            card_id=request.card_id,
            quality=request.quality,
            response_time_ms=request.time_ms,
            now=utcnow(),
        )
        progress = service.engine.get_progress(session_id)

    return AnswerResponse(
        card_id=schedule.card_id,
        ease_factor=schedule.ease_factor,
        interval=schedule.interval,
        repetitions=schedule.repetitions,
        next_review_date=schedule.next_review_date,
        remaining=progress.remaining_cards,
        queue_finished=progress.remaining_cards == 0,
    )


@router.post("/pause/{session_id}", response_model=SessionStateResponse)
async def session_pause(
    session_id: str,
    service: StudyService = Depends(get_study_service),
) -> SessionStateResponse:
    with _session_errors():
        service.engine.pause_session(session_id, utcnow())
        return _state(service.engine, session_id)


@router.post("/resume/{session_id}", response_model=SessionStateResponse)
async def session_resume(
    session_id: str,
    service: StudyService = Depends(get_study_service),
) -> SessionStateResponse:
    with _session_errors():
        service.engine.resume_session(session_id, utcnow())
        return _state(service.engine, session_id)


@router.post("/complete/{session_id}", response_model=SessionStateResponse)
async def session_complete(
    session_id: str,
    service: StudyService = Depends(get_study_service),
) -> SessionStateResponse:
    with _session_errors():
        service.engine.complete_session(session_id, utcnow())
        return _state(service.engine, session_id)


@router.post("/abandon/{session_id}", response_model=SessionStateResponse)
async def session_abandon(
    session_id: str,
    service: StudyService = Depends(get_study_service),
) -> SessionStateResponse:
    with _session_errors():
        service.engine.abandon_session(session_id, utcnow())
        return _state(service.engine, session_id)


@router.get("/progress/{session_id}", response_model=ProgressResponse)
async def session_progress(
    session_id: str,
    service: StudyService = Depends(get_study_service),
) -> ProgressResponse:
    """Get progress through the session's queue."""
    with _session_errors():
        progress = service.engine.get_progress(session_id)
        remaining_ms = service.engine.get_estimated_time_remaining(session_id)

    return ProgressResponse(
        total_cards=progress.total_cards,
        completed_cards=progress.completed_cards,
        current_card_index=progress.current_card_index,
        percentage=progress.percentage,
        remaining_cards=progress.remaining_cards,
        estimated_time_remaining_ms=remaining_ms,
    )


@router.get("/summary/{session_id}", response_model=SessionSummaryResponse)
async def session_summary(
    session_id: str,
    service: StudyService = Depends(get_study_service),
) -> SessionSummaryResponse:
    """Get the summary statistics of a session."""
    with _session_errors():
        s = service.engine.get_session_summary(session_id)

    return SessionSummaryResponse(
        cards_studied=s.cards_studied,
        total_time_ms=s.total_time,
        average_quality=s.average_quality,
        correct_answers=s.correct_answers,
        accuracy=s.accuracy,
        paused_time_ms=s.paused_time,
        session_date=s.session_date,
    )


@router.post("/retry/{session_id}", response_model=RetryResponse)
async def session_retry(
    session_id: str,
    db: AsyncSession = Depends(get_session),
    service: StudyService = Depends(get_study_service),
) -> RetryResponse:
    """Retry saving schedules whose first save failed."""
    with _session_errors():
        saved = await service.retry_pending(db, session_id)
    return RetryResponse(saved=saved)
