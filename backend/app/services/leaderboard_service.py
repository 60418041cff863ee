"""Season leaderboard: SeasonTotal documents folded from WeeklyScore."""

import logging
from collections import defaultdict

import app.database as _db
from app.models.scoring import SeasonTotal
from app.utils.locks import KeyedLock

logger = logging.getLogger("pickem.leaderboard_service")


def rank_totals(per_user_weeks: dict[str, dict[str, int]], season: int) -> list[SeasonTotal]:
    """Dense ranking by total: equal totals share a rank, the next total
    takes the following rank. Ties are listed by user id."""
    ordered = sorted(
        per_user_weeks.items(),
        key=lambda kv: (-sum(kv[1].values()), kv[0]),
    )
    ranked: list[SeasonTotal] = []
    rank = 0
    previous = None
    for user_id, weeks in ordered:
        total = sum(weeks.values())
        if total != previous:
            rank += 1
            previous = total
        ranked.append(SeasonTotal(
            user_id=user_id, season=season, total=total, weeks=weeks, rank=rank,
        ))
    return ranked


class LeaderboardAggregator:
    def __init__(self) -> None:
        self._locks = KeyedLock()

    async def rebuild_season(self, season: int) -> list[SeasonTotal]:
        """Replace the season's totals with a fresh fold over weekly scores."""
        async with self._locks.hold(season):
            rows = await _db.db.weekly_scores.find(
                {"season": season},
                {"user_id": 1, "week": 1, "total": 1},
            ).to_list(length=100_000)

            per_user: dict[str, dict[str, int]] = defaultdict(dict)
            for row in rows:
                per_user[row["user_id"]][str(row["week"])] = int(row.get("total", 0))

            totals = rank_totals(per_user, season)

            await _db.db.season_totals.delete_many({"season": season})
            if totals:
                await _db.db.season_totals.insert_many([t.model_dump() for t in totals])

        logger.info("Season totals rebuilt: season=%d users=%d", season, len(totals))
        return totals

    async def get_leaderboard(self, season: int, limit: int = 100) -> list[dict]:
        docs = await _db.db.season_totals.find(
            {"season": season}, {"_id": 0},
        ).sort([("rank", 1), ("user_id", 1)]).limit(limit).to_list(length=limit)
        return docs

    async def seasons_scored_since(self, since) -> list[int]:
        """Seasons with a scoring run finished after ``since`` (all when None)."""
        query = {"finished_at": {"$gt": since}} if since else {}
        seasons = await _db.db.scoring_runs.distinct("season", query)
        return sorted(int(s) for s in seasons)


leaderboard_aggregator = LeaderboardAggregator()
