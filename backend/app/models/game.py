"""Game model: read-only view of the upstream schedule feed."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from app.utils import ensure_utc

TIE = "TIE"

GAME_STATUSES = ("scheduled", "in_progress", "final", "cancelled")


class Game(BaseModel):
    """One NFL game of a week slate. `id` is the feed's game id."""
    id: str
    week: int
    season: int
    home_team: str
    away_team: str
    kickoff_at: datetime
    status: str = "scheduled"  # scheduled | in_progress | final | cancelled
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    touchdown_scorer_ids: list[str] = []

    @classmethod
    def from_doc(cls, doc: dict) -> "Game":
        return cls(
            id=str(doc["_id"]),
            week=int(doc["week"]),
            season=int(doc["season"]),
            home_team=doc["home_team"],
            away_team=doc["away_team"],
            kickoff_at=ensure_utc(doc["kickoff_at"]),
            status=doc.get("status", "scheduled"),
            home_score=doc.get("home_score"),
            away_score=doc.get("away_score"),
            touchdown_scorer_ids=[str(p) for p in doc.get("touchdown_scorer_ids") or []],
        )

    @property
    def teams(self) -> tuple[str, str]:
        return (self.home_team, self.away_team)

    @property
    def is_complete(self) -> bool:
        return (
            self.status == "final"
            and self.home_score is not None
            and self.away_score is not None
        )

    def has_kicked_off(self, now: datetime) -> bool:
        return ensure_utc(self.kickoff_at) <= now

    def winner(self) -> Optional[str]:
        """Winning team id, TIE on equal scores, None until final."""
        if not self.is_complete:
            return None
        if self.home_score > self.away_score:
            return self.home_team
        if self.away_score > self.home_score:
            return self.away_team
        return TIE
