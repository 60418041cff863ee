"""
backend/app/services/reveal.py

Purpose:
    Visibility rules for other users' picks. A pure function of the pick,
    the viewer, the kickoff map and the current time, so it can be applied
    per subscriber at emit time (live stream) and per request (snapshot).

    Rules for a non-owner:
    - a selection for game G is visible once G kicked off
    - lock of the week and touchdown scorer follow their own game; a scorer
      without a game follows the first kickoff of the week
    - the prop bet is visible once the last game of the week kicked off
    - a game with unknown kickoff is treated as not started

Dependencies:
    - app.utils
"""

from datetime import datetime
from typing import Any, Optional

from app.utils import parse_utc, to_iso


def serialize_pick(doc: dict) -> dict:
    """JSON-safe copy of a stored pick document."""
    prop = doc.get("prop_bet")
    if prop:
        prop = {**prop, "evaluated_at": to_iso(prop.get("evaluated_at"))}
    return {
        "id": str(doc["_id"]) if doc.get("_id") is not None else None,
        "user_id": doc["user_id"],
        "week": doc["week"],
        "season": doc["season"],
        "selections": dict(doc.get("selections") or {}),
        "lock_of_week": doc.get("lock_of_week"),
        "touchdown_scorer": doc.get("touchdown_scorer"),
        "prop_bet": prop,
        "is_finalized": bool(doc.get("is_finalized", False)),
        "created_at": to_iso(doc.get("created_at")),
        "updated_at": to_iso(doc.get("updated_at")),
    }


def serialize_kickoffs(kickoffs: dict[str, datetime]) -> dict[str, str]:
    return {gid: to_iso(ko) for gid, ko in kickoffs.items()}


def parse_kickoffs(raw: dict[str, Any]) -> dict[str, datetime]:
    return {gid: parse_utc(ko) for gid, ko in (raw or {}).items() if ko}


def redact_pick(
    pick: dict,
    *,
    viewer_id: Optional[str],
    kickoffs: dict[str, datetime],
    now: datetime,
) -> dict:
    """Return the part of ``pick`` that ``viewer_id`` may see at ``now``.

    ``pick`` is a serialized pick (see serialize_pick). The result carries a
    ``hidden`` block so clients can render placeholders.
    """
    if viewer_id is not None and pick.get("user_id") == viewer_id:
        return {**pick, "hidden": _nothing_hidden()}

    def started(game_id: Optional[str]) -> bool:
        kickoff = kickoffs.get(game_id) if game_id else None
        return kickoff is not None and kickoff <= now

    selections = pick.get("selections") or {}
    visible = {gid: team for gid, team in selections.items() if started(gid)}

    lock = pick.get("lock_of_week")
    show_lock = bool(lock) and started(lock.get("game_id"))

    scorer = pick.get("touchdown_scorer")
    if scorer and scorer.get("game_id"):
        show_scorer = started(scorer["game_id"])
    else:
        show_scorer = bool(scorer) and bool(kickoffs) and min(kickoffs.values()) <= now

    prop = pick.get("prop_bet")
    show_prop = bool(prop) and bool(kickoffs) and max(kickoffs.values()) <= now

    return {
        **pick,
        "selections": visible,
        "lock_of_week": lock if show_lock else None,
        "touchdown_scorer": scorer if show_scorer else None,
        "prop_bet": prop if show_prop else None,
        "hidden": {
            "selections": len(selections) - len(visible),
            "lock_of_week": bool(lock) and not show_lock,
            "touchdown_scorer": bool(scorer) and not show_scorer,
            "prop_bet": bool(prop) and not show_prop,
        },
    }


def redact_event_data(
    data: dict,
    *,
    viewer_id: Optional[str],
    now: datetime,
    kickoffs: Optional[dict[str, datetime]] = None,
) -> dict:
    """Apply redaction to the pick payloads of a live event.

    ``kickoffs`` overrides the map stored with the event; pass the current
    schedule so a postponed game stays hidden.
    """
    if "pick" not in data and "picks" not in data:
        return data
    if kickoffs is None:
        kickoffs = parse_kickoffs(data.get("kickoffs") or {})
    out = dict(data)
    if data.get("pick") is not None:
        out["pick"] = redact_pick(data["pick"], viewer_id=viewer_id, kickoffs=kickoffs, now=now)
    if data.get("picks") is not None:
        out["picks"] = [
            redact_pick(p, viewer_id=viewer_id, kickoffs=kickoffs, now=now)
            for p in data["picks"]
        ]
    return out


def _nothing_hidden() -> dict:
    return {"selections": 0, "lock_of_week": False, "touchdown_scorer": False, "prop_bet": False}
