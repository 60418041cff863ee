"""Pick models: one pick per user per week per season."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

PROP_PENDING = "pending"
PROP_CORRECT = "correct"
PROP_INCORRECT = "incorrect"
PROP_OUTCOMES = (PROP_CORRECT, PROP_INCORRECT)


class LockOfWeek(BaseModel):
    game_id: str
    team: str


class TouchdownScorer(BaseModel):
    player_id: str
    player_name: Optional[str] = None
    game_id: Optional[str] = None  # None = any game of the week

    @field_validator("player_id")
    @classmethod
    def _player_id_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("player_id must not be empty")
        return v


class PropBetDraft(BaseModel):
    text: str
    odds: Optional[int] = None  # American odds, e.g. +250 / -110
    game_id: Optional[str] = None

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("prop bet text must not be empty")
        if len(v) > 500:
            raise ValueError("prop bet text is limited to 500 characters")
        return v


class PropBetInDB(PropBetDraft):
    """Prop bet with its embedded resolution. Resolved exactly once."""
    status: str = PROP_PENDING  # pending | correct | incorrect
    evaluated_by: Optional[str] = None
    evaluated_at: Optional[datetime] = None
    points_won: int = 0


class PickDraft(BaseModel):
    """Request body for creating or replacing a weekly pick."""
    selections: dict[str, str] = {}  # game_id -> team
    lock_of_week: Optional[LockOfWeek] = None
    touchdown_scorer: Optional[TouchdownScorer] = None
    prop_bet: Optional[PropBetDraft] = None
    is_finalized: bool = False

    @field_validator("selections")
    @classmethod
    def _drop_empty_selections(cls, v: dict[str, str]) -> dict[str, str]:
        return {gid: team for gid, team in v.items() if team}


class PickResponse(BaseModel):
    """Pick returned to its owner (or an admin)."""
    id: str
    user_id: str
    week: int
    season: int
    selections: dict[str, str]
    lock_of_week: Optional[dict] = None
    touchdown_scorer: Optional[dict] = None
    prop_bet: Optional[dict] = None
    is_finalized: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ResolvePropsRequest(BaseModel):
    """Admin batch resolution of prop bets."""
    pick_ids: list[str]
    outcome: str = PROP_CORRECT

    @field_validator("outcome")
    @classmethod
    def _known_outcome(cls, v: str) -> str:
        if v not in PROP_OUTCOMES:
            raise ValueError(f"outcome must be one of {', '.join(PROP_OUTCOMES)}")
        return v
