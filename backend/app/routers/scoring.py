"""Weekly scoring endpoints: admin trigger and score reads."""

from fastapi import APIRouter, Depends, Request

from app.services.audit_service import log_audit
from app.services.auth_service import get_admin_user, get_current_user
from app.services.scoring_service import scoring_engine

router = APIRouter(prefix="/api/scoring", tags=["scoring"])


@router.post("/calculate-weekly/{week}/{season}")
async def calculate_weekly(
    week: int,
    season: int,
    request: Request,
    admin=Depends(get_admin_user),
):
    """Score a finished week. Safe to rerun; results are replaced, not added."""
    scores = await scoring_engine.calculate_week(week, season)
    await log_audit(
        actor_id=admin["id"],
        target_id=f"week:{season}-{week}",
        action="ADMIN_CALCULATE_WEEK",
        metadata={"users_scored": len(scores)},
        request=request,
    )
    return {
        "week": week,
        "season": season,
        "users_scored": len(scores),
        "scores": [s.model_dump() for s in scores.values()],
    }


@router.get("/user/{user_id}/week/{week}/{season}")
async def get_user_week(
    user_id: str,
    week: int,
    season: int,
    user=Depends(get_current_user),
):
    score = await scoring_engine.get_user_week_scoring(user_id, week, season)
    return score.model_dump()


@router.get("/user/{user_id}/season/{season}")
async def get_user_season(
    user_id: str,
    season: int,
    user=Depends(get_current_user),
):
    return await scoring_engine.get_user_season_points(user_id, season)


@router.get("/weekly-summary/{week}/{season}")
async def get_weekly_summary(week: int, season: int):
    """Public: every user's score for the week, ranked."""
    return await scoring_engine.get_weekly_summary(week, season)
