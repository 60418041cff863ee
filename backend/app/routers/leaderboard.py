from typing import Any

from fastapi import APIRouter, Query

from app.services.leaderboard_service import leaderboard_aggregator

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


@router.get("/{season}")
async def get_leaderboard(
    season: int, limit: int = Query(50, ge=1, le=500),
) -> list[dict[str, Any]]:
    """Season standings from the materialized season totals.

    Public endpoint: user ids and points only.
    """
    entries = await leaderboard_aggregator.get_leaderboard(season, limit)
    return [
        {
            "rank": e.get("rank"),
            "user_id": e["user_id"],
            "total": e.get("total", 0),
            "weeks": e.get("weeks", {}),
        }
        for e in entries
    ]
