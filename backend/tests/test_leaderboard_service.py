"""
backend/tests/test_leaderboard_service.py

Purpose:
    Season totals: dense ranking, deterministic tie order, full rebuilds
    and the scheduled materializer.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from app.services.leaderboard_service import LeaderboardAggregator, rank_totals
from app.workers.leaderboard import materialize_season_totals


def test_dense_ranking_orders_ties_by_user_id():
    ranked = rank_totals(
        {
            "carol": {"1": 4, "2": 3},
            "alice": {"1": 7},
            "bob": {"1": 5, "2": 2},
            "dave": {"1": 1},
        },
        2025,
    )
    assert [(t.user_id, t.total, t.rank) for t in ranked] == [
        ("alice", 7, 1),
        ("bob", 7, 1),
        ("carol", 7, 1),
        ("dave", 1, 2),
    ]


@pytest.mark.asyncio
async def test_rebuild_replaces_season_totals(fake_db):
    fake_db.weekly_scores.docs.extend([
        {"user_id": "u1", "week": 1, "season": 2025, "total": 6},
        {"user_id": "u1", "week": 2, "season": 2025, "total": 2},
        {"user_id": "u2", "week": 1, "season": 2025, "total": 9},
        {"user_id": "u3", "week": 1, "season": 2024, "total": 50},
    ])
    fake_db.season_totals.docs.append({"user_id": "gone", "season": 2025, "total": 99, "rank": 1})
    aggregator = LeaderboardAggregator()

    await aggregator.rebuild_season(2025)
    await aggregator.rebuild_season(2025)

    board = await aggregator.get_leaderboard(2025, limit=10)
    assert [(e["user_id"], e["total"], e["rank"]) for e in board] == [("u2", 9, 1), ("u1", 8, 2)]
    assert board[1]["weeks"] == {"1": 6, "2": 2}
    assert len(fake_db.season_totals.docs) == 2


@pytest.mark.asyncio
async def test_seasons_scored_since(fake_db):
    t0 = datetime(2025, 9, 10, tzinfo=timezone.utc)
    t1 = datetime(2025, 9, 20, tzinfo=timezone.utc)
    fake_db.scoring_runs.docs.extend([
        {"season": 2024, "week": 18, "finished_at": t0},
        {"season": 2025, "week": 2, "finished_at": t1},
    ])
    aggregator = LeaderboardAggregator()

    assert await aggregator.seasons_scored_since(None) == [2024, 2025]
    assert await aggregator.seasons_scored_since(t0) == [2025]
    assert await aggregator.seasons_scored_since(t1) == []


@pytest.mark.asyncio
async def test_materializer_sleeps_until_a_new_scoring_run(fake_db):
    fake_db.scoring_runs.docs.append(
        {"season": 2025, "week": 1, "finished_at": datetime(2025, 9, 10, tzinfo=timezone.utc)},
    )
    fake_db.weekly_scores.docs.append({"user_id": "u1", "week": 1, "season": 2025, "total": 4})
    aggregator = LeaderboardAggregator()

    assert await materialize_season_totals(aggregator=aggregator) == 1
    assert fake_db.season_totals.docs[0]["total"] == 4

    # No run finished since the last pass
    assert await materialize_season_totals(aggregator=aggregator) == 0
