"""Weekly pick endpoints: own pick CRUD plus the redacted all-picks snapshot."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from app.config import settings
from app.errors import AuthzError
from app.models.pick import PickDraft, PickResponse
from app.services.auth_service import get_current_user, get_optional_user
from app.services.game_schedule import game_schedule, kickoff_map
from app.services.live_stream import live_stream
from app.services.pick_service import pick_store, selection_outcomes
from app.services.reveal import redact_pick, serialize_pick
from app.utils import as_utc, season_for, utcnow

router = APIRouter(prefix="/api/picks", tags=["picks"])


def _season(season: Optional[int]) -> int:
    return season or season_for(utcnow(), settings.SEASON_ROLLOVER_MONTH)


def _target_user(user: dict, user_id: Optional[str]) -> str:
    """Only admins may act on someone else's pick."""
    if not user_id or user_id == user["id"]:
        return user["id"]
    if not user.get("is_admin"):
        raise AuthzError("You can only access your own picks.")
    return user_id


@router.get("/week/{week}")
async def get_week_pick(
    week: int,
    season: Optional[int] = Query(None),
    user_id: Optional[str] = Query(None),
    user=Depends(get_current_user),
):
    """Get the pick for a week (own pick; admins may pass user_id).

    Returns null when no pick exists yet.
    """
    target = _target_user(user, user_id)
    pick = await pick_store.get_pick(target, week, _season(season))
    if not pick:
        return None
    return _pick_response(pick)


@router.put("/week/{week}")
async def save_week_pick(
    week: int,
    body: PickDraft,
    season: Optional[int] = Query(None),
    user_id: Optional[str] = Query(None),
    user=Depends(get_current_user),
):
    """Create or replace the pick for a week. 423 once a referenced game started."""
    target = _target_user(user, user_id)
    pick = await pick_store.upsert_pick(target, week, _season(season), body)
    return _pick_response(pick)


@router.delete("/week/{week}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_week_pick(
    week: int,
    season: Optional[int] = Query(None),
    user_id: Optional[str] = Query(None),
    user=Depends(get_current_user),
):
    target = _target_user(user, user_id)
    await pick_store.delete_pick(target, week, _season(season))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/all/{week}")
async def get_all_picks(
    week: int,
    season: Optional[int] = Query(None),
    finalized_only: bool = Query(True),
    user=Depends(get_optional_user),
):
    """Everyone's picks for a week, with unrevealed parts hidden.

    `last_event_id` is the live stream position the snapshot reflects;
    pass it to /api/live/stream to continue from there.
    """
    season = _season(season)
    last_event_id = live_stream.last_event_id
    games = await game_schedule.get_week_games(week, season, allow_stale=True)
    games_by_id = {g.id: g for g in games}
    kickoffs = kickoff_map(games)
    viewer_id = user["id"] if user else None
    now = utcnow()

    picks = await pick_store.list_week_picks(week, season, finalized_only=finalized_only)
    rows = []
    for pick in picks:
        shown = redact_pick(serialize_pick(pick), viewer_id=viewer_id, kickoffs=kickoffs, now=now)
        shown["outcomes"] = selection_outcomes(shown, games_by_id)
        rows.append(shown)

    return {
        "week": week,
        "season": season,
        "games": [
            {
                "id": g.id,
                "home_team": g.home_team,
                "away_team": g.away_team,
                "kickoff_at": as_utc(g.kickoff_at),
                "status": g.status,
                "winner": g.winner(),
            }
            for g in games
        ],
        "picks": rows,
        "last_event_id": last_event_id,
    }


@router.get("/weeks")
async def get_finalized_weeks(season: Optional[int] = Query(None)):
    """Weeks of a season that have at least one finalized pick."""
    season = _season(season)
    return {"season": season, "weeks": await pick_store.list_finalized_weeks(season)}


@router.get("/used-td-scorers")
async def get_used_td_scorers(
    season: Optional[int] = Query(None),
    user=Depends(get_current_user),
):
    """Touchdown scorers the user already claimed this season."""
    season = _season(season)
    return {"season": season, "used": await pick_store.list_used_scorers(user["id"], season)}


def _pick_response(pick: dict) -> dict:
    return PickResponse(
        id=str(pick["_id"]),
        user_id=pick["user_id"],
        week=pick["week"],
        season=pick["season"],
        selections=pick.get("selections") or {},
        lock_of_week=pick.get("lock_of_week"),
        touchdown_scorer=pick.get("touchdown_scorer"),
        prop_bet=pick.get("prop_bet"),
        is_finalized=pick.get("is_finalized", False),
        created_at=as_utc(pick.get("created_at")),
        updated_at=as_utc(pick.get("updated_at")),
    ).model_dump(mode="json")
