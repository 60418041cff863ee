import logging

from app.services.leaderboard_service import leaderboard_aggregator
from app.utils import utcnow
from app.workers._state import get_synced_at, set_synced

logger = logging.getLogger("pickem.leaderboard")

_STATE_KEY = "season_totals"


async def materialize_season_totals(*, aggregator=leaderboard_aggregator) -> int:
    """Rebuild season totals for every season scored since the last run.

    Smart sleep: does nothing when no scoring run finished in between.
    Scoring runs already rebuild their own season; this job catches
    totals lost to a crash between the two writes.
    """
    started = utcnow()
    last_run = await get_synced_at(_STATE_KEY)
    seasons = await aggregator.seasons_scored_since(last_run)
    if not seasons:
        logger.debug("Smart sleep: no scoring runs since last rebuild, skipping")
        return 0

    for season in seasons:
        await aggregator.rebuild_season(season)

    await set_synced(_STATE_KEY, started)
    logger.info("Season totals materialized: seasons=%s", seasons)
    return len(seasons)
