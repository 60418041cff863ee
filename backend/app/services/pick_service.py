"""
backend/app/services/pick_service.py

Purpose:
    Weekly pick lifecycle. One pick per (user, week, season); the whole pick
    becomes immutable once any game it references has kicked off. Touchdown
    scorer choices are claimed in the scorer registry before the pick is
    committed, and every committed change is published to the live stream
    exactly once, after the write.

Dependencies:
    - app.database
    - app.services.game_schedule
    - app.services.scorer_registry
    - app.utils.locks.KeyedLock
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import app.database as _db
from app.errors import ConflictError, LockedPickError, NotFoundError, ValidationError
from app.models.game import Game
from app.models.pick import PROP_PENDING, PickDraft, PropBetInDB
from app.services.game_schedule import GameSchedule, game_schedule, kickoff_map
from app.services.live_stream import live_stream
from app.services.reveal import serialize_kickoffs, serialize_pick
from app.services.scorer_registry import ScorerRegistry, scorer_registry
from app.utils import utcnow
from app.utils.locks import KeyedLock

logger = logging.getLogger("pickem.pick_service")


class PickStore:
    def __init__(
        self,
        *,
        schedule: GameSchedule,
        registry: ScorerRegistry,
        publisher=None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._schedule = schedule
        self._registry = registry
        self._publisher = publisher
        self._clock = clock
        self._locks = KeyedLock()

    async def get_pick(self, user_id: str, week: int, season: int) -> Optional[dict]:
        return await _db.db.picks.find_one(
            {"user_id": user_id, "week": week, "season": season},
        )

    async def upsert_pick(
        self, user_id: str, week: int, season: int, draft: PickDraft,
    ) -> dict:
        """Create or replace the user's pick for a week.

        Raises ValidationError for games/teams outside the week,
        LockedPickError once a referenced game kicked off, and
        ConflictError (AlreadyUsed) for a touchdown scorer already used
        this season. Nothing is persisted when any of these is raised.
        """
        async with self._locks.hold((user_id, week, season)):
            now = self._clock()
            games = await self._schedule.get_week_games(week, season)
            games_by_id = {g.id: g for g in games}
            existing = await self.get_pick(user_id, week, season)

            _validate_draft(draft, games_by_id, week, season)
            _assert_unlocked(
                _draft_game_ids(draft, games) | _pick_game_ids(existing, games), games_by_id, now,
            )
            prop_doc = _merge_prop(existing, draft)

            old_player = ((existing or {}).get("touchdown_scorer") or {}).get("player_id")
            new_player = draft.touchdown_scorer.player_id if draft.touchdown_scorer else None

            claimed = None
            if new_player and new_player != old_player:
                await self._registry.claim(user_id, season, new_player, week=week)
                claimed = new_player

            try:
                saved = await self._commit(user_id, week, season, draft, prop_doc, now)
            except Exception:
                if claimed:
                    await self._registry.release(user_id, season, claimed)
                raise

            if old_player and old_player != new_player:
                await self._registry.release(user_id, season, old_player)

            logger.info(
                "Pick saved: user=%s week=%d season=%d selections=%d finalized=%s",
                user_id, week, season, len(draft.selections), draft.is_finalized,
            )
            await self._notify("pick.updated", saved, games)
        return saved

    async def delete_pick(self, user_id: str, week: int, season: int) -> None:
        async with self._locks.hold((user_id, week, season)):
            existing = await self.get_pick(user_id, week, season)
            if not existing:
                raise NotFoundError("No pick found for this week.", week=week, season=season)

            games = await self._schedule.get_week_games(week, season)
            _assert_unlocked(
                _pick_game_ids(existing, games), {g.id: g for g in games}, self._clock(),
            )

            await _db.db.picks.delete_one({"_id": existing["_id"]})

            player_id = (existing.get("touchdown_scorer") or {}).get("player_id")
            if player_id:
                await self._registry.release(user_id, season, player_id)

            logger.info("Pick deleted: user=%s week=%d season=%d", user_id, week, season)
            await self._notify("pick.deleted", existing, games)

    async def list_week_picks(
        self, week: int, season: int, *, finalized_only: bool = False,
    ) -> list[dict]:
        query: dict = {"week": week, "season": season}
        if finalized_only:
            query["is_finalized"] = True
        return await _db.db.picks.find(query).sort("updated_at", -1).to_list(length=5000)

    async def list_finalized_weeks(self, season: int) -> list[int]:
        weeks = await _db.db.picks.distinct(
            "week", {"season": season, "is_finalized": True},
        )
        return sorted(int(w) for w in weeks)

    async def list_used_scorers(self, user_id: str, season: int) -> list[dict]:
        return await self._registry.list_used(user_id, season)

    async def _commit(
        self,
        user_id: str,
        week: int,
        season: int,
        draft: PickDraft,
        prop_doc: Optional[dict],
        now: datetime,
    ) -> dict:
        key = {"user_id": user_id, "week": week, "season": season}
        update = {
            "$set": {
                "selections": dict(draft.selections),
                "lock_of_week": draft.lock_of_week.model_dump() if draft.lock_of_week else None,
                "touchdown_scorer": (
                    draft.touchdown_scorer.model_dump() if draft.touchdown_scorer else None
                ),
                "prop_bet": prop_doc,
                "is_finalized": draft.is_finalized,
                "updated_at": now,
            },
            "$setOnInsert": {"created_at": now},
        }
        try:
            return await _db.db.picks.find_one_and_update(
                key, update, upsert=True, return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # Lost an insert race against another process; the document
            # exists now, so the same upsert becomes a plain update.
            logger.warning("Pick upsert raced for %s, retrying once", key)
        try:
            return await _db.db.picks.find_one_and_update(
                key, update, upsert=True, return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as exc:
            raise ConflictError("Pick was modified concurrently, please retry.") from exc

    async def _notify(self, event_type: str, pick: dict, games: list[Game]) -> None:
        if self._publisher is None:
            return
        await self._publisher.publish(event_type, {
            "user_id": pick["user_id"],
            "week": pick["week"],
            "season": pick["season"],
            "pick": serialize_pick(pick),
            "kickoffs": serialize_kickoffs(kickoff_map(games)),
        })


def selection_outcomes(pick: dict, games_by_id: dict[str, Game]) -> dict[str, Optional[bool]]:
    """Per visible selection: True/False once the game is final, else None."""
    outcomes: dict[str, Optional[bool]] = {}
    for game_id, team in (pick.get("selections") or {}).items():
        game = games_by_id.get(game_id)
        winner = game.winner() if game else None
        outcomes[game_id] = None if winner is None else winner == team
    return outcomes


def _validate_draft(draft: PickDraft, games_by_id: dict[str, Game], week: int, season: int) -> None:
    if not games_by_id:
        raise ValidationError("No games found for this week.", week=week, season=season)

    unknown: set[str] = set()
    invalid_teams: list[str] = []

    for game_id, team in draft.selections.items():
        game = games_by_id.get(game_id)
        if game is None:
            unknown.add(game_id)
        elif team not in game.teams:
            invalid_teams.append(game_id)

    lock = draft.lock_of_week
    if lock:
        game = games_by_id.get(lock.game_id)
        if game is None:
            unknown.add(lock.game_id)
        elif lock.team not in game.teams:
            invalid_teams.append(lock.game_id)
        elif draft.selections.get(lock.game_id, lock.team) != lock.team:
            raise ValidationError(
                "Lock of the Week must match your selection for that game.",
                game_id=lock.game_id,
            )

    for ref in (draft.touchdown_scorer, draft.prop_bet):
        if ref is not None and ref.game_id and ref.game_id not in games_by_id:
            unknown.add(ref.game_id)

    if unknown:
        raise ValidationError(
            "Pick references games outside this week.",
            unknown_game_ids=sorted(unknown),
        )
    if invalid_teams:
        raise ValidationError(
            "Selected team is not playing in that game.",
            game_ids=sorted(set(invalid_teams)),
        )


def _draft_game_ids(draft: PickDraft, games: list[Game]) -> set[str]:
    ids = set(draft.selections)
    if draft.lock_of_week:
        ids.add(draft.lock_of_week.game_id)
    for ref in (draft.touchdown_scorer, draft.prop_bet):
        if ref is None:
            continue
        ids.add(ref.game_id or _first_game_id(games))
    ids.discard(None)
    return ids


def _pick_game_ids(pick: Optional[dict], games: list[Game]) -> set[str]:
    if not pick:
        return set()
    ids = set(pick.get("selections") or {})
    lock = pick.get("lock_of_week")
    if lock and lock.get("game_id"):
        ids.add(lock["game_id"])
    for field in ("touchdown_scorer", "prop_bet"):
        ref = pick.get(field)
        if ref:
            ids.add(ref.get("game_id") or _first_game_id(games))
    ids.discard(None)
    return ids


def _first_game_id(games: list[Game]) -> Optional[str]:
    # A scorer or prop without a game covers the whole week, so it locks
    # with the week's first kickoff
    if not games:
        return None
    return min(games, key=lambda g: (g.kickoff_at, g.id)).id


def _assert_unlocked(game_ids: set[str], games_by_id: dict[str, Game], now: datetime) -> None:
    started = sorted(
        gid for gid in game_ids
        if gid in games_by_id and games_by_id[gid].has_kicked_off(now)
    )
    if started:
        raise LockedPickError(
            "This pick is locked: a game it references has already kicked off.",
            started_game_ids=started,
        )


def _merge_prop(existing: Optional[dict], draft: PickDraft) -> Optional[dict]:
    """Prop bet document to store. A resolved prop is terminal."""
    current = (existing or {}).get("prop_bet")
    wanted = draft.prop_bet

    if current and current.get("status", PROP_PENDING) != PROP_PENDING:
        same = wanted is not None and (
            wanted.text == current.get("text")
            and wanted.odds == current.get("odds")
            and wanted.game_id == current.get("game_id")
        )
        if not same:
            raise LockedPickError("Prop bet has already been resolved and cannot be changed.")
        return current

    if wanted is None:
        return None
    return PropBetInDB(**wanted.model_dump()).model_dump()


pick_store = PickStore(
    schedule=game_schedule,
    registry=scorer_registry,
    publisher=live_stream,
)
