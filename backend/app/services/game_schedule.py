"""
backend/app/services/game_schedule.py

Purpose:
    Read-only access to the `games` collection maintained by the upstream
    schedule feed. Supplies kickoff times (locking, reveal) and final results
    (scoring). Connection failures surface as UpstreamError; read paths that
    tolerate staleness may be served from the last successful read of a week.

Dependencies:
    - app.database
    - pymongo.errors
"""

import logging
from datetime import datetime

from pymongo.errors import ConnectionFailure

import app.database as _db
from app.errors import UpstreamError
from app.models.game import Game

logger = logging.getLogger("pickem.game_schedule")

_MAX_GAMES_PER_WEEK = 32


class GameSchedule:
    def __init__(self) -> None:
        self._last_known: dict[tuple[int, int], list[Game]] = {}

    async def get_week_games(
        self, week: int, season: int, *, allow_stale: bool = False,
    ) -> list[Game]:
        """Games of a week ordered by kickoff.

        With ``allow_stale`` a failed read falls back to the last week slate
        seen by this process. Writers must never pass it.
        """
        try:
            docs = await _db.db.games.find(
                {"week": week, "season": season},
            ).to_list(length=_MAX_GAMES_PER_WEEK)
        except ConnectionFailure as exc:
            cached = self._last_known.get((week, season))
            if allow_stale and cached is not None:
                logger.warning(
                    "Schedule unavailable, serving cached week %d/%d: %s",
                    week, season, exc,
                )
                return list(cached)
            raise UpstreamError(
                "Game schedule is temporarily unavailable.", week=week, season=season,
            ) from exc

        games = sorted(
            (Game.from_doc(doc) for doc in docs),
            key=lambda g: (g.kickoff_at, g.id),
        )
        self._last_known[(week, season)] = games
        return games

    async def get_games_kicking_off(
        self, start: datetime, end: datetime,
    ) -> list[Game]:
        """Games whose kickoff lies in the half-open window (start, end]."""
        try:
            docs = await _db.db.games.find(
                {"kickoff_at": {"$gt": start, "$lte": end}},
            ).to_list(length=500)
        except ConnectionFailure as exc:
            raise UpstreamError("Game schedule is temporarily unavailable.") from exc
        return [Game.from_doc(doc) for doc in docs]

    async def week_kickoffs(self, week: int, season: int) -> dict[str, datetime]:
        """Kickoff map of a week as the feed has it now (stale reads allowed)."""
        return kickoff_map(await self.get_week_games(week, season, allow_stale=True))


def kickoff_map(games: list[Game]) -> dict[str, datetime]:
    return {g.id: g.kickoff_at for g in games}


game_schedule = GameSchedule()
