"""Admin endpoints: prop bet review and batch resolution."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from app.models.pick import ResolvePropsRequest
from app.services.auth_service import get_admin_user
from app.services.prop_service import prop_workflow
from app.services.reveal import serialize_pick

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/resolve-props")
async def resolve_props(
    body: ResolvePropsRequest,
    request: Request,
    admin=Depends(get_admin_user),
):
    """Apply one outcome to the pending props of the given picks.

    Already-resolved props are left alone, so a retried batch is harmless.
    """
    resolved = await prop_workflow.resolve(
        body.pick_ids, body.outcome, admin["id"], request=request,
    )
    return {"resolved": resolved}


@router.get("/prop-bets")
async def list_prop_bets(
    status: Optional[str] = Query(None, pattern="^(pending|correct|incorrect)$"),
    season: Optional[int] = Query(None),
    week: Optional[int] = Query(None),
    admin=Depends(get_admin_user),
):
    picks = await prop_workflow.list_props(status=status, season=season, week=week)
    return [
        {
            "pick_id": str(p["_id"]),
            "user_id": p["user_id"],
            "week": p["week"],
            "season": p["season"],
            "prop_bet": serialize_pick(p)["prop_bet"],
        }
        for p in picks
    ]
