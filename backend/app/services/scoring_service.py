"""
backend/app/services/scoring_service.py

Purpose:
    Weekly scoring. Once every game of a week is final, each pick of that
    week is scored against results, touchdown scorers and prop resolutions,
    and the week's WeeklyScore documents are replaced wholesale. Reruns over
    unchanged inputs produce identical output. Season totals are rebuilt
    after each run.

Dependencies:
    - app.database
    - app.services.game_schedule
    - app.services.leaderboard_service
    - app.utils.locks.KeyedLock
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

import app.database as _db
from app.config import settings
from app.errors import NotFoundError, NotReadyError
from app.models.game import TIE, Game
from app.models.pick import PROP_CORRECT, PROP_PENDING
from app.models.scoring import GameScoreLine, WeeklyScore
from app.services.game_schedule import GameSchedule, game_schedule
from app.services.leaderboard_service import LeaderboardAggregator, leaderboard_aggregator
from app.services.live_stream import live_stream
from app.utils import utcnow
from app.utils.locks import KeyedLock

logger = logging.getLogger("pickem.scoring_service")


@dataclass(frozen=True)
class ScoringPolicy:
    points_per_selection: int = 1
    lock_bonus: int = 2
    lock_penalty: int = -1
    touchdown_scorer_bonus: int = 3
    prop_points: int = 1

    @classmethod
    def from_settings(cls, config) -> "ScoringPolicy":
        return cls(
            points_per_selection=config.SCORING_POINTS_PER_SELECTION,
            lock_bonus=config.SCORING_LOCK_BONUS,
            lock_penalty=config.SCORING_LOCK_PENALTY,
            touchdown_scorer_bonus=config.SCORING_TD_SCORER_BONUS,
            prop_points=config.SCORING_PROP_POINTS,
        )


def score_pick(pick: dict, games_by_id: dict[str, Game], policy: ScoringPolicy) -> WeeklyScore:
    """Score one pick against final results. Pure."""
    lines: list[GameScoreLine] = []
    for game_id in sorted(pick.get("selections") or {}):
        team = pick["selections"][game_id]
        game = games_by_id.get(game_id)
        winner = game.winner() if game else None
        correct = winner is not None and winner == team
        lines.append(GameScoreLine(
            game_id=game_id,
            selected_team=team,
            winner=winner,
            correct=correct,
            points=policy.points_per_selection if correct else 0,
        ))
    correct_count = sum(1 for line in lines if line.correct)
    selection_points = sum(line.points for line in lines)

    lock_result, lock_points = "none", 0
    lock = pick.get("lock_of_week")
    if lock:
        game = games_by_id.get(lock.get("game_id"))
        winner = game.winner() if game else None
        if winner == TIE:
            lock_result = "push"
        elif winner is not None and winner == lock.get("team"):
            lock_result, lock_points = "correct", policy.lock_bonus
        else:
            lock_result, lock_points = "incorrect", policy.lock_penalty

    td_result, td_points = "none", 0
    scorer = pick.get("touchdown_scorer")
    if scorer and scorer.get("player_id"):
        if scorer.get("game_id"):
            game = games_by_id.get(scorer["game_id"])
            scored = set(game.touchdown_scorer_ids) if game else set()
        else:
            scored = {p for g in games_by_id.values() for p in g.touchdown_scorer_ids}
        if scorer["player_id"] in scored:
            td_result, td_points = "correct", policy.touchdown_scorer_bonus
        else:
            td_result = "incorrect"

    prop_result, prop_points = "none", 0
    prop = pick.get("prop_bet")
    if prop:
        prop_result = prop.get("status", PROP_PENDING)
        if prop_result == PROP_CORRECT:
            prop_points = int(prop.get("points_won", 1)) * policy.prop_points

    return WeeklyScore(
        user_id=pick["user_id"],
        week=pick["week"],
        season=pick["season"],
        total=selection_points + lock_points + td_points + prop_points,
        correct_selections=correct_count,
        total_selections=len(lines),
        selection_points=selection_points,
        lock_result=lock_result,
        lock_points=lock_points,
        touchdown_result=td_result,
        touchdown_points=td_points,
        prop_result=prop_result,
        prop_points=prop_points,
        games=lines,
    )


class ScoringEngine:
    def __init__(
        self,
        *,
        schedule: GameSchedule,
        policy: ScoringPolicy,
        aggregator: LeaderboardAggregator,
        publisher=None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._schedule = schedule
        self._policy = policy
        self._aggregator = aggregator
        self._publisher = publisher
        self._clock = clock
        self._locks = KeyedLock()

    @property
    def policy(self) -> ScoringPolicy:
        return self._policy

    async def calculate_week(self, week: int, season: int) -> dict[str, WeeklyScore]:
        """Score every pick of a finished week and replace its WeeklyScores.

        Raises NotReadyError when the week has no games or a game is not final.
        """
        async with self._locks.hold((week, season)):
            started_at = self._clock()
            games = await self._schedule.get_week_games(week, season)
            if not games:
                raise NotReadyError("No games found for this week.", week=week, season=season)
            pending = [g.id for g in games if not g.is_complete]
            if pending:
                raise NotReadyError(
                    "Not all games of this week are final yet.",
                    pending_game_ids=pending,
                )

            games_by_id = {g.id: g for g in games}
            picks = await _db.db.picks.find(
                {"week": week, "season": season},
            ).to_list(length=5000)

            scores: dict[str, WeeklyScore] = {}
            for pick in sorted(picks, key=lambda p: p["user_id"]):
                scores[pick["user_id"]] = score_pick(pick, games_by_id, self._policy)

            for user_id, score in scores.items():
                await _db.db.weekly_scores.replace_one(
                    {"user_id": user_id, "week": week, "season": season},
                    score.model_dump(),
                    upsert=True,
                )
            stale = await _db.db.weekly_scores.delete_many({
                "week": week, "season": season, "user_id": {"$nin": list(scores)},
            })

            await _db.db.scoring_runs.insert_one({
                "week": week,
                "season": season,
                "users_scored": len(scores),
                "stale_removed": stale.deleted_count,
                "started_at": started_at,
                "finished_at": self._clock(),
            })
            logger.info(
                "Week scored: week=%d season=%d users=%d stale_removed=%d",
                week, season, len(scores), stale.deleted_count,
            )

        await self._aggregator.rebuild_season(season)
        if self._publisher is not None:
            await self._publisher.publish("scores.updated", {
                "week": week,
                "season": season,
                "users_scored": len(scores),
            })
        return scores

    async def get_user_week_scoring(self, user_id: str, week: int, season: int) -> WeeklyScore:
        doc = await _db.db.weekly_scores.find_one(
            {"user_id": user_id, "week": week, "season": season}, {"_id": 0},
        )
        if not doc:
            raise NotFoundError("No score for this week yet.", week=week, season=season)
        return WeeklyScore(**doc)

    async def get_user_season_points(self, user_id: str, season: int) -> dict:
        weeks = await _db.db.weekly_scores.find(
            {"user_id": user_id, "season": season}, {"_id": 0},
        ).sort("week", 1).to_list(length=25)
        total_doc = await _db.db.season_totals.find_one({"user_id": user_id, "season": season})
        return {
            "user_id": user_id,
            "season": season,
            "total": sum(int(w.get("total", 0)) for w in weeks),
            "rank": total_doc.get("rank") if total_doc else None,
            "weeks": [
                {"week": w["week"], "total": w.get("total", 0),
                 "correct_selections": w.get("correct_selections", 0),
                 "total_selections": w.get("total_selections", 0)}
                for w in weeks
            ],
        }

    async def get_weekly_summary(self, week: int, season: int) -> dict:
        docs = await _db.db.weekly_scores.find(
            {"week": week, "season": season}, {"_id": 0},
        ).sort([("total", -1), ("user_id", 1)]).to_list(length=5000)

        entries = []
        rank = 0
        previous = None
        for doc in docs:
            if doc["total"] != previous:
                rank += 1
                previous = doc["total"]
            entries.append({**doc, "rank": rank})

        totals = [d["total"] for d in docs]
        return {
            "week": week,
            "season": season,
            "users": len(docs),
            "high_score": max(totals) if totals else 0,
            "average_score": round(sum(totals) / len(totals), 2) if totals else 0,
            "scores": entries,
        }


scoring_engine = ScoringEngine(
    schedule=game_schedule,
    policy=ScoringPolicy.from_settings(settings),
    aggregator=leaderboard_aggregator,
    publisher=live_stream,
)
