"""Persistent worker state: tracks synced_at per worker across restarts.

Lets scheduled jobs resume from their last completed window after a
restart or deploy. Uses a lightweight `worker_state` collection.
"""

from datetime import datetime

import app.database as _db
from app.utils import ensure_utc, utcnow


async def get_synced_at(worker_id: str) -> datetime | None:
    """Get the last synced_at timestamp for a worker."""
    doc = await _db.db.worker_state.find_one({"_id": worker_id})
    return ensure_utc(doc["synced_at"]) if doc else None


async def set_synced(worker_id: str, at: datetime | None = None) -> None:
    """Mark a worker as synced up to ``at`` (default: now)."""
    await _db.db.worker_state.update_one(
        {"_id": worker_id},
        {"$set": {"synced_at": at or utcnow()}},
        upsert=True,
    )

