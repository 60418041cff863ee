"""
backend/app/services/scorer_registry.py

Purpose:
    Touchdown-scorer usage registry. A user may claim a given player once
    per season. Claims are atomic check-and-insert: concurrent claims of the
    same (user, season, player) yield exactly one success.

Dependencies:
    - app.database
    - pymongo.errors.DuplicateKeyError
    - app.utils.locks.KeyedLock (in-memory variant)
"""

import logging
from abc import ABC, abstractmethod

from pymongo.errors import DuplicateKeyError

import app.database as _db
from app.errors import AlreadyUsed
from app.utils import utcnow
from app.utils.locks import KeyedLock

logger = logging.getLogger("pickem.scorer_registry")


class ScorerRegistry(ABC):
    @abstractmethod
    async def claim(self, user_id: str, season: int, player_id: str, *, week: int) -> None:
        """Claim a player for the season or raise AlreadyUsed."""

    @abstractmethod
    async def release(self, user_id: str, season: int, player_id: str) -> bool:
        """Free a claimed player. Returns False if nothing was claimed."""

    @abstractmethod
    async def list_used(self, user_id: str, season: int) -> list[dict]:
        """Claimed players of a season, oldest week first."""


class MongoScorerRegistry(ScorerRegistry):
    """Backed by the unique (user_id, season, player_id) index."""

    async def claim(self, user_id: str, season: int, player_id: str, *, week: int) -> None:
        try:
            await _db.db.used_td_scorers.insert_one({
                "user_id": user_id,
                "season": season,
                "player_id": player_id,
                "week": week,
                "created_at": utcnow(),
            })
        except DuplicateKeyError as exc:
            existing = await _db.db.used_td_scorers.find_one(
                {"user_id": user_id, "season": season, "player_id": player_id},
            )
            used_in = existing.get("week") if existing else None
            raise AlreadyUsed(
                "You already used this touchdown scorer this season.",
                player_id=player_id, used_in_week=used_in,
            ) from exc
        logger.info("TD scorer claimed: user=%s season=%d player=%s week=%d",
                    user_id, season, player_id, week)

    async def release(self, user_id: str, season: int, player_id: str) -> bool:
        result = await _db.db.used_td_scorers.delete_one(
            {"user_id": user_id, "season": season, "player_id": player_id},
        )
        if result.deleted_count:
            logger.info("TD scorer released: user=%s season=%d player=%s",
                        user_id, season, player_id)
        return result.deleted_count > 0

    async def list_used(self, user_id: str, season: int) -> list[dict]:
        docs = await _db.db.used_td_scorers.find(
            {"user_id": user_id, "season": season},
        ).sort("week", 1).to_list(length=100)
        return [{"player_id": d["player_id"], "week": d.get("week")} for d in docs]


class InMemoryScorerRegistry(ScorerRegistry):
    """Process-local registry for single-node deployments and tests."""

    def __init__(self) -> None:
        self._claims: dict[tuple[str, int], dict[str, int]] = {}
        self._locks = KeyedLock()

    async def claim(self, user_id: str, season: int, player_id: str, *, week: int) -> None:
        async with self._locks.hold((user_id, season)):
            used = self._claims.setdefault((user_id, season), {})
            if player_id in used:
                raise AlreadyUsed(
                    "You already used this touchdown scorer this season.",
                    player_id=player_id, used_in_week=used[player_id],
                )
            used[player_id] = week

    async def release(self, user_id: str, season: int, player_id: str) -> bool:
        async with self._locks.hold((user_id, season)):
            used = self._claims.get((user_id, season), {})
            return used.pop(player_id, None) is not None

    async def list_used(self, user_id: str, season: int) -> list[dict]:
        used = self._claims.get((user_id, season), {})
        return [
            {"player_id": pid, "week": week}
            for pid, week in sorted(used.items(), key=lambda kv: (kv[1], kv[0]))
        ]


scorer_registry = MongoScorerRegistry()
