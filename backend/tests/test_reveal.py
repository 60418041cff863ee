"""
backend/tests/test_reveal.py

Purpose:
    Visibility rules for other users' picks before and after kickoff.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from app.services.reveal import redact_event_data, redact_pick, serialize_kickoffs

T0 = datetime(2025, 9, 14, 17, 0, tzinfo=timezone.utc)
KICKOFFS = {
    "g1": T0,
    "g2": T0 + timedelta(hours=3),
    "g3": T0 + timedelta(days=1, hours=3),
}

PICK = {
    "id": "p1",
    "user_id": "owner",
    "week": 3,
    "season": 2025,
    "selections": {"g1": "g1-HOME", "g2": "g2-AWAY", "g3": "g3-HOME", "g-unknown": "X"},
    "lock_of_week": {"game_id": "g2", "team": "g2-AWAY"},
    "touchdown_scorer": {"player_id": "p-7", "player_name": "Seven"},
    "prop_bet": {"text": "Over 45.5", "status": "pending"},
    "is_finalized": True,
}


def test_owner_sees_everything_before_kickoff():
    shown = redact_pick(PICK, viewer_id="owner", kickoffs=KICKOFFS, now=T0 - timedelta(days=1))
    assert shown["selections"] == PICK["selections"]
    assert shown["prop_bet"] == PICK["prop_bet"]
    assert shown["hidden"]["selections"] == 0


def test_guest_sees_nothing_before_first_kickoff():
    shown = redact_pick(PICK, viewer_id=None, kickoffs=KICKOFFS, now=T0 - timedelta(seconds=1))
    assert shown["selections"] == {}
    assert shown["lock_of_week"] is None
    assert shown["touchdown_scorer"] is None
    assert shown["prop_bet"] is None
    assert shown["hidden"] == {
        "selections": 4,
        "lock_of_week": True,
        "touchdown_scorer": True,
        "prop_bet": True,
    }


def test_selections_reveal_game_by_game():
    shown = redact_pick(PICK, viewer_id="other", kickoffs=KICKOFFS, now=T0)
    assert shown["selections"] == {"g1": "g1-HOME"}
    # A scorer without a game follows the first kickoff of the week
    assert shown["touchdown_scorer"] == PICK["touchdown_scorer"]
    assert shown["lock_of_week"] is None

    later = redact_pick(PICK, viewer_id="other", kickoffs=KICKOFFS, now=T0 + timedelta(hours=3))
    assert later["selections"] == {"g1": "g1-HOME", "g2": "g2-AWAY"}
    assert later["lock_of_week"] == PICK["lock_of_week"]
    assert later["prop_bet"] is None


def test_prop_waits_for_last_kickoff_and_unknown_games_stay_hidden():
    shown = redact_pick(PICK, viewer_id="other", kickoffs=KICKOFFS, now=T0 + timedelta(days=2))
    assert shown["prop_bet"] == PICK["prop_bet"]
    assert "g-unknown" not in shown["selections"]
    assert shown["hidden"]["selections"] == 1


def test_scorer_with_game_follows_that_game():
    pick = {**PICK, "touchdown_scorer": {"player_id": "p-7", "game_id": "g3"}}
    shown = redact_pick(pick, viewer_id="other", kickoffs=KICKOFFS, now=T0 + timedelta(hours=4))
    assert shown["touchdown_scorer"] is None


def test_event_payloads_are_redacted_from_serialized_kickoffs():
    data = {"pick": PICK, "kickoffs": serialize_kickoffs(KICKOFFS), "week": 3}
    out = redact_event_data(data, viewer_id="other", now=T0)
    assert out["pick"]["selections"] == {"g1": "g1-HOME"}
    assert out["week"] == 3
    # The stored event is not modified
    assert data["pick"] is PICK

    batch = redact_event_data(
        {"picks": [PICK], "kickoffs": serialize_kickoffs(KICKOFFS)}, viewer_id=None, now=T0,
    )
    assert batch["picks"][0]["selections"] == {"g1": "g1-HOME"}

    plain = {"week": 3, "season": 2025}
    assert redact_event_data(plain, viewer_id=None, now=T0) is plain
