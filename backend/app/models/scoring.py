from typing import Optional

from pydantic import BaseModel


class GameScoreLine(BaseModel):
    """Per-game breakdown of one weekly score."""
    game_id: str
    selected_team: str
    winner: Optional[str] = None
    correct: bool = False
    points: int = 0


class WeeklyScore(BaseModel):
    """Score of one pick for one week. Carries no run timestamp, so reruns
    over the same inputs produce identical documents."""
    user_id: str
    week: int
    season: int
    total: int = 0
    correct_selections: int = 0
    total_selections: int = 0
    selection_points: int = 0
    lock_result: str = "none"  # none | correct | incorrect | push
    lock_points: int = 0
    touchdown_result: str = "none"  # none | correct | incorrect
    touchdown_points: int = 0
    prop_result: str = "none"  # none | pending | correct | incorrect
    prop_points: int = 0
    games: list[GameScoreLine] = []


class SeasonTotal(BaseModel):
    user_id: str
    season: int
    total: int = 0
    weeks: dict[str, int] = {}  # str(week) -> weekly total
    rank: Optional[int] = None
