"""Tests for the session and stats HTTP routes."""

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studycore.config import utcnow
from studycore.srs.store import ScheduleStore


async def _enroll(factory: async_sessionmaker[AsyncSession], deck_id: int, *card_ids: int) -> None:
    async with factory() as db:
        store = ScheduleStore(db)
        for card_id in card_ids:
            await store.enroll(card_id, deck_id, utcnow())
        await store.commit()


async def _start(client: AsyncClient, deck_id: int = 1) -> str:
    response = await client.post("/api/session/start", params={"deck_id": deck_id})
    assert response.status_code == 200
    return response.json()["session_id"]


@pytest.mark.asyncio
async def test_start_without_due_cards(client: AsyncClient) -> None:
    response = await client.post("/api/session/start", params={"deck_id": 1})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_study_flow(client: AsyncClient, session_factory: async_sessionmaker[AsyncSession]) -> None:
    await _enroll(session_factory, 1, 11, 12)

    response = await client.post("/api/session/start", params={"deck_id": 1})
    body = response.json()
    assert body["total_cards"] == 2
    assert body["total_due"] == 2
    session_id = body["session_id"]

    response = await client.get(f"/api/session/next/{session_id}")
    assert response.status_code == 200
    assert response.json()["card_id"] == 11
    assert response.json()["remaining"] == 2

    response = await client.post(
        f"/api/session/answer/{session_id}",
        json={"card_id": 11, "quality": "good", "time_ms": 3000},
    )
    assert response.status_code == 200
    answer = response.json()
    assert answer["interval"] == 1
    assert answer["repetitions"] == 1
    assert answer["remaining"] == 1
    assert answer["queue_finished"] is False

    response = await client.post(
        f"/api/session/answer/{session_id}",
        json={"card_id": 12, "quality": "again", "time_ms": 5000},
    )
    assert response.json()["queue_finished"] is True

    response = await client.get(f"/api/session/next/{session_id}")
    assert response.status_code == 410

    progress = (await client.get(f"/api/session/progress/{session_id}")).json()
    assert progress["percentage"] == 100
    assert progress["estimated_time_remaining_ms"] == 0

    response = await client.post(f"/api/session/complete/{session_id}")
    assert response.json() == {"session_id": session_id, "status": "completed"}

    summary = (await client.get(f"/api/session/summary/{session_id}")).json()
    assert summary["cards_studied"] == 2
    assert summary["correct_answers"] == 1
    assert summary["average_quality"] == 2.0

    stats = (await client.get("/api/stats/1")).json()
    assert stats["total_cards"] == 2
    assert stats["cards_due"] == 0
    assert stats["cards_new"] == 0
    assert stats["total_reviews"] == 2
    assert stats["average_quality"] == 2.0
    assert stats["retention_rate"] == 0.5
    assert stats["streak_days"] == 1


@pytest.mark.asyncio
async def test_pause_and_resume(client: AsyncClient, session_factory: async_sessionmaker[AsyncSession]) -> None:
    await _enroll(session_factory, 1, 1)
    session_id = await _start(client)

    response = await client.post(f"/api/session/pause/{session_id}")
    assert response.json()["status"] == "paused"

    response = await client.post(f"/api/session/pause/{session_id}")
    assert response.status_code == 409

    response = await client.post(
        f"/api/session/answer/{session_id}",
        json={"card_id": 1, "quality": "good", "time_ms": 100},
    )
    assert response.status_code == 409

    response = await client.post(f"/api/session/resume/{session_id}")
    assert response.json()["status"] == "active"

    response = await client.post(f"/api/session/abandon/{session_id}")
    assert response.json()["status"] == "abandoned"

    response = await client.post(f"/api/session/resume/{session_id}")
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_unknown_session(client: AsyncClient) -> None:
    for path in ("progress", "summary", "next"):
        response = await client.get(f"/api/session/{path}/session-nope")
        assert response.status_code == 404
    response = await client.post("/api/session/pause/session-nope")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_answer_validation(client: AsyncClient, session_factory: async_sessionmaker[AsyncSession]) -> None:
    await _enroll(session_factory, 1, 1, 2)
    session_id = await _start(client)

    response = await client.post(
        f"/api/session/answer/{session_id}",
        json={"card_id": 2, "quality": "good", "time_ms": 100},
    )
    assert response.status_code == 400

    response = await client.post(
        f"/api/session/answer/{session_id}",
        json={"card_id": 1, "quality": "perfect", "time_ms": 100},
    )
    assert response.status_code == 422

    response = await client.post(
        f"/api/session/answer/{session_id}",
        json={"card_id": 1, "quality": "good", "time_ms": -5},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_save_failure_then_retry(
    client: AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    await _enroll(session_factory, 1, 1, 2)
    session_id = await _start(client)

    async def failing_commit(self: ScheduleStore) -> None:
        raise SQLAlchemyError("disk I/O error")

    with monkeypatch.context() as m:
        m.setattr(ScheduleStore, "commit", failing_commit)
        response = await client.post(
            f"/api/session/answer/{session_id}",
            json={"card_id": 1, "quality": "hard", "time_ms": 800},
        )
    assert response.status_code == 503
    assert response.json()["detail"]["card_id"] == 1

    progress = (await client.get(f"/api/session/progress/{session_id}")).json()
    assert progress["completed_cards"] == 1

    response = await client.post(f"/api/session/retry/{session_id}")
    assert response.json() == {"saved": 1}

    stats = (await client.get("/api/stats/1")).json()
    assert stats["total_reviews"] == 1
    assert stats["average_quality"] == 2.0

    async with session_factory() as db:
        saved = await ScheduleStore(db).get(1)
    assert saved is not None
    assert saved.repetitions == 1


@pytest.mark.asyncio
async def test_next_requires_active_session(
    client: AsyncClient, session_factory: async_sessionmaker[AsyncSession]
) -> None:
    await _enroll(session_factory, 1, 1, 2)
    session_id = await _start(client)

    await client.post(f"/api/session/pause/{session_id}")
    response = await client.get(f"/api/session/next/{session_id}")
    assert response.status_code == 409
    assert "paused" in response.json()["detail"]

    await client.post(f"/api/session/resume/{session_id}")
    response = await client.get(f"/api/session/next/{session_id}")
    assert response.status_code == 200
    assert response.json()["card_id"] == 1

    await client.post(f"/api/session/complete/{session_id}")
    response = await client.get(f"/api/session/next/{session_id}")
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_card_stats_and_daily_progress(
    client: AsyncClient, session_factory: async_sessionmaker[AsyncSession]
) -> None:
    await _enroll(session_factory, 1, 11, 12, 13)
    session_id = await _start(client)
    for card_id, quality, time_ms in ((11, "good", 3000), (12, "again", 5000)):
        response = await client.post(
            f"/api/session/answer/{session_id}",
            json={"card_id": card_id, "quality": quality, "time_ms": time_ms},
        )
        assert response.status_code == 200

    stats = (await client.get("/api/stats/card/11")).json()
    assert stats["total_reviews"] == 1
    assert stats["average_quality"] == 3.0
    assert stats["average_response_time_ms"] == 3000
    assert stats["streak_days"] == 1
    assert stats["difficulty"] == "medium"
    assert stats["repetitions"] == 1
    assert stats["interval"] == 1
    assert stats["last_reviewed_at"] is not None

    unseen = (await client.get("/api/stats/card/13")).json()
    assert unseen["total_reviews"] == 0
    assert unseen["average_quality"] is None
    assert unseen["difficulty"] is None
    assert unseen["streak_days"] == 0
    assert unseen["repetitions"] == 0

    response = await client.get("/api/stats/card/999")
    assert response.status_code == 404

    history = (await client.get("/api/stats/card/12/history")).json()
    assert len(history) == 1
    assert history[0]["quality"] == "again"
    assert history[0]["response_time_ms"] == 5000
    assert history[0]["session_id"] == session_id

    daily = (await client.get("/api/stats/daily")).json()
    assert daily["day"] == utcnow().date().isoformat()
    assert daily["reviews"] == 2
    assert daily["cards_studied"] == 2
    assert daily["time_spent_ms"] == 8000
    assert daily["average_quality"] == 2.0
    assert daily["cards_goal"] == 20
    assert daily["goal_reached"] is False

    other_deck = (await client.get("/api/stats/daily", params={"deck_id": 2})).json()
    assert other_deck["reviews"] == 0
    assert other_deck["average_quality"] is None

    past = (await client.get("/api/stats/daily", params={"day": "2000-01-01"})).json()
    assert past["reviews"] == 0
