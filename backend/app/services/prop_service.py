"""
backend/app/services/prop_service.py

Purpose:
    Admin judgment of free-text prop bets. A batch applies one outcome to
    every still-pending prop among the given picks; resolved props are
    terminal and left untouched, so retrying a batch is harmless. Scoring
    is not triggered here: the admin reruns the week when ready.

Dependencies:
    - app.database
    - app.services.audit_service
"""

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from bson import ObjectId
from fastapi import Request

import app.database as _db
from app.errors import ValidationError
from app.models.pick import PROP_CORRECT, PROP_OUTCOMES, PROP_PENDING
from app.services.audit_service import log_audit
from app.utils import utcnow

logger = logging.getLogger("pickem.prop_service")


class PropResolutionWorkflow:
    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock

    async def resolve(
        self,
        pick_ids: Iterable[str],
        outcome: str,
        admin_id: str,
        *,
        request: Optional[Request] = None,
    ) -> int:
        """Resolve the pending props of ``pick_ids``. Returns how many changed."""
        if outcome not in PROP_OUTCOMES:
            raise ValidationError(f"Unknown prop outcome '{outcome}'.")

        ids = list(dict.fromkeys(pick_ids))
        if not ids:
            raise ValidationError("pick_ids must not be empty.")
        object_ids = [ObjectId(pid) for pid in ids if ObjectId.is_valid(pid)]
        if len(object_ids) < len(ids):
            logger.warning("Ignoring %d malformed pick ids", len(ids) - len(object_ids))

        result = await _db.db.picks.update_many(
            {"_id": {"$in": object_ids}, "prop_bet.status": PROP_PENDING},
            {"$set": {
                "prop_bet.status": outcome,
                "prop_bet.evaluated_by": admin_id,
                "prop_bet.evaluated_at": self._clock(),
                "prop_bet.points_won": 1 if outcome == PROP_CORRECT else 0,
            }},
        )
        resolved = result.modified_count

        logger.info(
            "Props resolved: admin=%s outcome=%s requested=%d resolved=%d",
            admin_id, outcome, len(ids), resolved,
        )
        await log_audit(
            actor_id=admin_id,
            target_id=",".join(ids),
            action="ADMIN_RESOLVE_PROPS",
            metadata={"outcome": outcome, "requested": len(ids), "resolved": resolved},
            request=request,
        )
        return resolved

    async def list_props(
        self,
        *,
        status: Optional[str] = None,
        season: Optional[int] = None,
        week: Optional[int] = None,
    ) -> list[dict]:
        """Picks carrying a prop bet, newest first, for the review queue."""
        query: dict = {"prop_bet": {"$ne": None}}
        if status:
            query["prop_bet.status"] = status
        if season is not None:
            query["season"] = season
        if week is not None:
            query["week"] = week
        return await _db.db.picks.find(query).sort("updated_at", -1).to_list(length=1000)


prop_workflow = PropResolutionWorkflow()
