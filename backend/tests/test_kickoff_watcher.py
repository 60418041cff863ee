"""
backend/tests/test_kickoff_watcher.py

Purpose:
    Kickoff watcher: one reveal event per week with a kickoff in the window
    since the previous run, and nothing on a quiet run.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from app.models.pick import PickDraft
from app.services.game_schedule import GameSchedule
from app.services.live_stream import LiveRevealStream
from app.services.pick_service import PickStore
from app.services.scorer_registry import InMemoryScorerRegistry
from app.workers.kickoff_watcher import publish_kickoff_reveals
from conftest import make_game


@pytest.fixture
def wiring(fake_db, clock):
    fake_db.games.docs.extend([
        make_game("g1", clock.now + timedelta(minutes=10)),
        make_game("g2", clock.now + timedelta(hours=3)),
        make_game("w4g1", clock.now + timedelta(days=7), week=4),
    ])
    schedule = GameSchedule()
    stream = LiveRevealStream(
        replay_buffer_size=10, queue_size=10, heartbeat_seconds=5, max_subscribers=5, clock=clock,
    )
    store = PickStore(schedule=schedule, registry=InMemoryScorerRegistry(), clock=clock)
    return schedule, store, stream


async def _run(wiring, clock) -> int:
    schedule, store, stream = wiring
    return await publish_kickoff_reveals(schedule=schedule, store=store, stream=stream, clock=clock)


@pytest.mark.asyncio
async def test_reveal_published_once_per_kickoff(wiring, clock, fake_db):
    _, store, stream = wiring
    await store.upsert_pick("u1", 3, 2025, PickDraft(selections={"g1": "g1-HOME", "g2": "g2-AWAY"}))
    await store.upsert_pick("u2", 3, 2025, PickDraft(selections={"g1": "g1-AWAY"}))

    # Quiet run before kickoff
    assert await _run(wiring, clock) == 0
    assert stream.stats()["published_total"] == 0

    sub = await stream.subscribe(viewer_id="u2")
    clock.advance(minutes=10, seconds=30)
    assert await _run(wiring, clock) == 1

    message = stream.render(await sub.queue.get(), viewer_id="u2")
    assert message["event"] == "picks.revealed"
    assert message["data"]["game_ids"] == ["g1"]
    by_user = {p["user_id"]: p for p in message["data"]["picks"]}
    assert by_user["u1"]["selections"] == {"g1": "g1-HOME"}
    assert by_user["u1"]["hidden"]["selections"] == 1

    # The window moved on: the same kickoff is not announced twice
    clock.advance(minutes=1)
    assert await _run(wiring, clock) == 0
    assert fake_db.worker_state.docs[0]["synced_at"] == clock.now


@pytest.mark.asyncio
async def test_long_outage_is_capped(wiring, clock, fake_db):
    fake_db.worker_state.docs.append({"_id": "kickoff_watcher", "synced_at": clock.now - timedelta(days=3)})
    fake_db.games.docs.append(make_game("old", clock.now - timedelta(days=1), week=2))
    clock.advance(minutes=11)

    # Only g1 is inside the capped window; the day-old kickoff is skipped
    assert await _run(wiring, clock) == 1
