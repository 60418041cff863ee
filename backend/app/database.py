"""
backend/app/database.py

Purpose:
    MongoDB connection bootstrap and index management for all collections.
    The unique indexes here back the one-pick-per-week and
    one-scorer-per-season rules.

Dependencies:
    - motor.motor_asyncio
    - app.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("pickem.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=5,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()


async def close_db() -> None:
    global client
    if client:
        client.close()


async def get_db() -> AsyncIOMotorDatabase:
    return db


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent, safe to run repeatedly."""

    # ---- Users (owned by the account service; read here for admin flag) ----
    await db.users.create_index("is_deleted")

    # ---- Games (written by the upstream feed, read-only here) ----
    await db.games.create_index([("season", 1), ("week", 1)])
    await db.games.create_index("kickoff_at")

    # ---- Picks ----
    # One pick per user per week per season
    await db.picks.create_index(
        [("user_id", 1), ("week", 1), ("season", 1)], unique=True,
    )
    await db.picks.create_index([("season", 1), ("week", 1), ("is_finalized", 1)])
    await db.picks.create_index("prop_bet.status", sparse=True)

    # ---- Touchdown scorer usage ----
    # A user may claim a given player once per season
    await db.used_td_scorers.create_index(
        [("user_id", 1), ("season", 1), ("player_id", 1)], unique=True,
    )

    # ---- Scoring ----
    await db.weekly_scores.create_index(
        [("user_id", 1), ("week", 1), ("season", 1)], unique=True,
    )
    await db.weekly_scores.create_index([("season", 1), ("week", 1)])
    await db.season_totals.create_index([("user_id", 1), ("season", 1)], unique=True)
    await db.season_totals.create_index([("season", 1), ("rank", 1)])
    await db.scoring_runs.create_index([("season", 1), ("week", 1), ("finished_at", -1)])

    # ---- Audit log (insert-only) ----
    await db.audit_logs.create_index([("timestamp", -1)])
    await db.audit_logs.create_index([("actor_id", 1), ("timestamp", -1)])

    logger.info("Indexes ensured")
