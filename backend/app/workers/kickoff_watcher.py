"""Publishes reveal events as kickoff boundaries pass.

Runs on an interval. Each run covers the window (last_run, now]; every week
with a game kicking off inside it gets one `picks.revealed` event carrying
the week's picks and kickoff map, and subscribers' redaction then shows what
became visible.
"""

import logging
from datetime import timedelta

from app.config import settings
from app.services.game_schedule import game_schedule, kickoff_map
from app.services.live_stream import live_stream
from app.services.pick_service import pick_store
from app.services.reveal import serialize_kickoffs, serialize_pick
from app.utils import utcnow
from app.workers._state import get_synced_at, set_synced

logger = logging.getLogger("pickem.kickoff_watcher")

_STATE_KEY = "kickoff_watcher"
# Cap on how far back a first run or a long outage looks
_MAX_LOOKBACK = timedelta(hours=6)


async def publish_kickoff_reveals(
    *,
    schedule=game_schedule,
    store=pick_store,
    stream=live_stream,
    clock=utcnow,
) -> int:
    """Publish reveal events for weeks with a kickoff since the last run.

    Returns the number of weeks announced.
    """
    now = clock()
    last_run = await get_synced_at(_STATE_KEY)
    if last_run is None:
        last_run = now - timedelta(seconds=settings.KICKOFF_WATCH_SECONDS)
    start = max(last_run, now - _MAX_LOOKBACK)

    kicked_off = await schedule.get_games_kicking_off(start, now)
    weeks: dict[tuple[int, int], list[str]] = {}
    for game in kicked_off:
        weeks.setdefault((game.season, game.week), []).append(game.id)

    for (season, week), game_ids in sorted(weeks.items()):
        week_games = await schedule.get_week_games(week, season, allow_stale=True)
        picks = await store.list_week_picks(week, season)
        await stream.publish("picks.revealed", {
            "week": week,
            "season": season,
            "game_ids": sorted(game_ids),
            "kickoffs": serialize_kickoffs(kickoff_map(week_games)),
            "picks": [serialize_pick(p) for p in picks],
        })
        logger.info("Reveal published: week=%d season=%d games=%d picks=%d",
                    week, season, len(game_ids), len(picks))

    await set_synced(_STATE_KEY, now)
    return len(weeks)
