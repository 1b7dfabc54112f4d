from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from readsync.clock import utcnow
from readsync.config import WATCH
from readsync.id import make_uuid


async def _create_book(client, title="Dune", author="Frank Herbert", **extra):
    resp = await client.post("/api/books", json={"title": title, "author": author, **extra})
    assert resp.status_code == 201
    return resp.json()


async def _reading(client, **extra):
    return await _create_book(client, total_pages=300, reading_status="currently_reading", **extra)


# --- books ---

@pytest.mark.asyncio
async def test_create_and_list_books(client):
    book = await _create_book(client)
    assert book["id"] == str(make_uuid("Dune", "Frank Herbert"))
    assert book["reading_status"] == "want_to_read"

    resp = await client.get("/api/books")
    assert resp.status_code == 200
    assert [b["id"] for b in resp.json()] == [book["id"]]


@pytest.mark.asyncio
async def test_create_duplicate_book_conflicts(client):
    await _create_book(client)
    resp = await client.post("/api/books", json={"title": "dune", "author": "frank herbert"})
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_list_books_by_status(client):
    await _create_book(client, title="Emma", author="Jane Austen")
    reading = await _reading(client)

    resp = await client.get("/api/books", params={"status": "currently_reading"})
    assert [b["id"] for b in resp.json()] == [reading["id"]]


@pytest.mark.asyncio
async def test_update_book_clamps_page(client):
    book = await _create_book(client, total_pages=300, current_page=250)

    resp = await client.put(f"/api/books/{book['id']}", json={"title": "Dune Messiah", "total_pages": 200})
    assert resp.status_code == 200
    assert resp.json()["title"] == "Dune Messiah"
    assert resp.json()["current_page"] == 200


@pytest.mark.asyncio
async def test_delete_book(client):
    book = await _create_book(client, title="Temp", author="Nobody")

    resp = await client.delete(f"/api/books/{book['id']}")
    assert resp.status_code == 204

    resp = await client.get(f"/api/books/{book['id']}")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_finish_book_fills_pages_and_unlocks(client):
    book = await _reading(client)

    resp = await client.put(f"/api/books/{book['id']}/status", json={"reading_status": "finished"})
    assert resp.status_code == 200
    finished = resp.json()
    assert finished["current_page"] == 300
    assert finished["date_finished"] is not None

    resp = await client.get("/api/profile/achievements")
    assert "first_book" in [a["type"] for a in resp.json()]


@pytest.mark.asyncio
async def test_position_and_quotes(client):
    book = await _reading(client)

    resp = await client.get(f"/api/books/{book['id']}/position")
    assert resp.status_code == 404

    resp = await client.post(f"/api/books/{book['id']}/position", json={"page_number": 42, "line_number": 7})
    assert resp.status_code == 201
    resp = await client.get(f"/api/books/{book['id']}/position")
    assert resp.json()["page_number"] == 42

    resp = await client.post(
        f"/api/books/{book['id']}/quotes",
        json={"text": "Fear is the mind-killer.", "page_number": 8, "is_favorite": True},
    )
    assert resp.status_code == 201
    resp = await client.get(f"/api/books/{book['id']}/quotes")
    assert [q["text"] for q in resp.json()] == ["Fear is the mind-killer."]


@pytest.mark.asyncio
async def test_position_and_quotes_are_sent_to_peer(recording_client, recorder):
    book = await _reading(recording_client)

    await recording_client.post(f"/api/books/{book['id']}/position", json={"page_number": 42, "line_number": 7})
    await recording_client.post(f"/api/books/{book['id']}/quotes", json={"text": "Fear is the mind-killer."})
    await recording_client.post(f"/api/books/{book['id']}/quotes", json={"text": "The spice must flow."})

    sent = recorder.channel.sent
    assert recorder.channel.kinds() == ["book_position", "quotes", "quotes"]
    assert (sent[0].page_number, sent[0].line_number) == (42, 7)
    assert [q.text for q in sent[-1].quotes] == ["Fear is the mind-killer.", "The spice must flow."]


@pytest.mark.asyncio
async def test_watch_position_marking_can_be_turned_off(client, sync_service, monkeypatch):
    monkeypatch.setattr(sync_service, "device", WATCH)
    book = await _reading(client)
    await client.put("/api/profile/settings", json={"enable_watch_position_marking": False})

    resp = await client.post(f"/api/books/{book['id']}/position", json={"page_number": 42})
    assert resp.status_code == 409

    await client.put("/api/profile/settings", json={"enable_watch_position_marking": True})
    resp = await client.post(f"/api/books/{book['id']}/position", json={"page_number": 42})
    assert resp.status_code == 201


# --- active sessions ---

@pytest.mark.asyncio
async def test_session_lifecycle(client):
    book = await _reading(client, current_page=10)

    resp = await client.get("/api/sessions/active")
    assert resp.status_code == 404

    resp = await client.post("/api/sessions/active", json={"book_id": book["id"]})
    assert resp.status_code == 201
    assert resp.json()["start_page"] == 10

    resp = await client.post("/api/sessions/active/page", json={"delta": 20})
    assert resp.json()["current_page"] == 30
    assert resp.json()["pages_read"] == 20

    resp = await client.post("/api/sessions/active/pause")
    assert resp.json()["is_paused"] is True
    resp = await client.post("/api/sessions/active/resume")
    assert resp.json()["is_paused"] is False

    resp = await client.post("/api/sessions/active/complete", json={})
    assert resp.status_code == 200
    body = resp.json()
    assert body["completed"] is True
    assert body["session"]["pages_read"] == 20
    assert body["session"]["xp_earned"] > 0

    resp = await client.get("/api/sessions/active")
    assert resp.status_code == 404
    resp = await client.get("/api/profile")
    assert resp.json()["total_xp"] == body["session"]["xp_earned"]
    assert resp.json()["current_streak"] == 1


@pytest.mark.asyncio
async def test_second_start_conflicts(client):
    dune = await _reading(client)
    emma = await _reading(client, title="Emma", author="Jane Austen")
    await client.post("/api/sessions/active", json={"book_id": dune["id"]})

    resp = await client.post("/api/sessions/active", json={"book_id": emma["id"]})
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["book_title"] == "Dune"
    assert detail["source_device"] == "Phone"

    resp = await client.post("/api/sessions/active", json={"book_id": emma["id"], "replace": True})
    assert resp.status_code == 201
    assert resp.json()["book_id"] == emma["id"]


@pytest.mark.asyncio
async def test_start_for_unknown_book(client):
    resp = await client.post("/api/sessions/active", json={"book_id": str(make_uuid("No", "Body"))})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_adjust_page_needs_exactly_one_field(client):
    book = await _reading(client)
    await client.post("/api/sessions/active", json={"book_id": book["id"]})

    resp = await client.post("/api/sessions/active/page", json={"delta": 1, "page": 5})
    assert resp.status_code == 422
    resp = await client.post("/api/sessions/active/page", json={})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_absolute_page_past_end_conflicts(client):
    book = await _reading(client)
    await client.post("/api/sessions/active", json={"book_id": book["id"]})

    resp = await client.post("/api/sessions/active/page", json={"page": 301})
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_complete_without_progress(client):
    book = await _reading(client)
    await client.post("/api/sessions/active", json={"book_id": book["id"]})

    resp = await client.post("/api/sessions/active/complete")
    assert resp.status_code == 200
    assert resp.json() == {"completed": False, "session": None}


@pytest.mark.asyncio
async def test_pause_without_session(client):
    resp = await client.post("/api/sessions/active/pause")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_abandon_session(client):
    book = await _reading(client)
    await client.post("/api/sessions/active", json={"book_id": book["id"]})

    resp = await client.delete("/api/sessions/active")
    assert resp.status_code == 204
    resp = await client.get("/api/sessions")
    assert resp.json() == []


# --- quick progress and session history ---

@pytest.mark.asyncio
async def test_quick_progress_logs_auto_session(client):
    book = await _create_book(client, total_pages=300)

    resp = await client.post("/api/sessions/quick-progress", json={"book_id": book["id"], "delta": 25})
    assert resp.status_code == 201
    body = resp.json()
    assert body["current_page"] == 25
    assert body["session"]["is_auto_generated"] is True

    resp = await client.get(f"/api/books/{book['id']}")
    assert resp.json()["reading_status"] == "currently_reading"

    resp = await client.get("/api/sessions", params={"include_auto": False})
    assert resp.json() == []
    resp = await client.get("/api/sessions", params={"book_id": book["id"]})
    assert len(resp.json()) == 1


@pytest.mark.asyncio
async def test_quick_progress_backwards_only_corrects(client):
    book = await _reading(client, current_page=50)

    resp = await client.post("/api/sessions/quick-progress", json={"book_id": book["id"], "delta": -10})
    assert resp.status_code == 201
    assert resp.json() == {"book_id": book["id"], "current_page": 40, "session": None}


@pytest.mark.asyncio
async def test_quick_progress_zero_is_rejected(client):
    book = await _reading(client)
    resp = await client.post("/api/sessions/quick-progress", json={"book_id": book["id"], "delta": 0})
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_delete_sessions_recalculates(client):
    book = await _reading(client)
    first = (await client.post("/api/sessions/quick-progress", json={"book_id": book["id"], "delta": 10})).json()
    second = (await client.post("/api/sessions/quick-progress", json={"book_id": book["id"], "delta": 15})).json()

    resp = await client.post("/api/sessions/delete", json={"session_ids": [second["session"]["id"]]})
    assert resp.json() == {"deleted": 1}

    resp = await client.get(f"/api/books/{book['id']}")
    assert resp.json()["current_page"] == 10
    resp = await client.get("/api/profile")
    assert resp.json()["total_xp"] == first["session"]["xp_earned"]

    resp = await client.delete(f"/api/sessions/{first['session']['id']}")
    assert resp.status_code == 204
    resp = await client.delete(f"/api/sessions/{first['session']['id']}")
    assert resp.status_code == 404


# --- profile ---

@pytest.mark.asyncio
async def test_profile_defaults(client):
    resp = await client.get("/api/profile")
    assert resp.status_code == 200
    profile = resp.json()
    assert profile["total_xp"] == 0
    assert profile["current_level"] == 1
    assert profile["page_increment_amount"] == 1


@pytest.mark.asyncio
async def test_update_settings(client):
    resp = await client.put("/api/profile/settings", json={"page_increment_amount": 5, "streaks_paused": True})
    assert resp.status_code == 200
    assert resp.json()["page_increment_amount"] == 5
    assert resp.json()["streaks_paused"] is True

    resp = await client.put("/api/profile/settings", json={"page_increment_amount": 0})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_failed_settings_save_reverts(recording_client, recorder, monkeypatch):
    async def broken_commit(self):
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(AsyncSession, "commit", broken_commit)
    resp = await recording_client.put(
        "/api/profile/settings", json={"page_increment_amount": 5, "streaks_paused": True}
    )
    monkeypatch.undo()

    assert resp.status_code == 500
    assert "reverted" in resp.json()["detail"]
    assert "profile_settings" not in recorder.channel.kinds()

    profile = (await recording_client.get("/api/profile")).json()
    assert profile["page_increment_amount"] == 1
    assert profile["streaks_paused"] is False


@pytest.mark.asyncio
async def test_streak_status_without_history(client):
    resp = await client.get("/api/profile/streak")
    assert resp.status_code == 200
    body = resp.json()
    assert body["current_streak"] == 0
    assert body["deadline"] is None
    assert body["pardon"]["status"] == "not_needed"


@pytest.mark.asyncio
async def test_pardon_refused_when_not_needed(client):
    resp = await client.post("/api/profile/streak/pardon")
    assert resp.status_code == 409
    assert resp.json()["detail"]["status"] == "not_needed"


@pytest.mark.asyncio
async def test_pardon_bridges_missed_day(client, session, profile):
    profile.current_streak = 4
    profile.longest_streak = 4
    profile.last_reading_date = utcnow() - timedelta(days=2)
    await session.commit()

    resp = await client.get("/api/profile/streak")
    assert resp.json()["pardon"]["status"] == "available"

    resp = await client.post("/api/profile/streak/pardon")
    assert resp.status_code == 200
    assert resp.json()["current_streak"] == 5
    assert resp.json()["last_pardon_date"] is not None


@pytest.mark.asyncio
async def test_pardon_pushes_stats_to_peer(recording_client, recorder, session, profile):
    profile.current_streak = 4
    profile.longest_streak = 4
    profile.last_reading_date = utcnow() - timedelta(days=2)
    await session.commit()

    resp = await recording_client.post("/api/profile/streak/pardon")
    assert resp.status_code == 200

    assert recorder.channel.kinds() == ["profile_stats"]
    stats = recorder.channel.sent[0]
    assert stats.current_streak == 5
    assert stats.last_pardon_date is not None


@pytest.mark.asyncio
async def test_recalculate(client):
    book = await _reading(client)
    await client.post("/api/sessions/quick-progress", json={"book_id": book["id"], "delta": 30})

    resp = await client.post("/api/profile/recalculate")
    assert resp.status_code == 200
    assert resp.json()["current_streak"] == 1
    assert resp.json()["total_xp"] > 0


# --- goals ---

@pytest.mark.asyncio
async def test_goal_crud(client):
    now = datetime.now(UTC)
    resp = await client.post("/api/goals", json={
        "type": "pages_per_day",
        "target_value": 20,
        "start_date": (now - timedelta(days=1)).isoformat(),
        "end_date": (now + timedelta(days=6)).isoformat(),
    })
    assert resp.status_code == 201
    goal = resp.json()
    assert goal["is_completed"] is False

    resp = await client.get("/api/goals")
    assert [g["id"] for g in resp.json()] == [goal["id"]]

    resp = await client.post("/api/goals/refresh")
    assert resp.status_code == 200

    resp = await client.delete(f"/api/goals/{goal['id']}")
    assert resp.status_code == 204
    resp = await client.delete(f"/api/goals/{goal['id']}")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_goal_end_before_start(client):
    now = datetime.now(UTC)
    resp = await client.post("/api/goals", json={
        "type": "books_per_year",
        "target_value": 12,
        "start_date": now.isoformat(),
        "end_date": (now - timedelta(days=1)).isoformat(),
    })
    assert resp.status_code == 422


# --- peer inbox ---

@pytest.mark.asyncio
async def test_inbox_accepts_and_applies_page_delta(client):
    book = await _reading(client, current_page=10)

    resp = await client.post("/api/sync/messages", json={
        "kind": "page_delta",
        "bookUUID": book["id"],
        "delta": 5,
        "timestamp": utcnow().isoformat(),
    })
    assert resp.status_code == 202
    assert resp.json()["applied"] is True

    resp = await client.get(f"/api/books/{book['id']}")
    assert resp.json()["current_page"] == 15


@pytest.mark.asyncio
async def test_inbox_drops_garbage(client):
    resp = await client.post("/api/sync/messages", json={"kind": "teleport"})
    assert resp.status_code == 202
    assert resp.json() == {"accepted": True, "applied": False}


@pytest.mark.asyncio
async def test_phone_ignores_context(client):
    resp = await client.post("/api/sync/context", json={"books": [], "sentAt": utcnow().isoformat()})
    assert resp.status_code == 202
    assert resp.json()["applied"] is False


@pytest.mark.asyncio
async def test_broadcast_without_peer(client):
    await _reading(client)

    resp = await client.post("/api/sync/broadcast")
    assert resp.status_code == 202
    assert resp.json() == {"sent": True, "books": 1, "reachable": False}
