"""
backend/app/services/live_stream.py

Purpose:
    Process-local publish/subscribe hub behind the live reveal feed (SSE).
    Every subscriber owns a bounded queue drained by its own request task;
    a subscriber whose queue overflows is dropped instead of slowing the
    publisher. Pick payloads are redacted per subscriber when an event is
    emitted, so a replayed event reflects visibility at emit time. Kickoffs
    are re-read from the schedule when an event is emitted (briefly cached);
    the map captured at publish time is only a fallback.

    Event ids are "<epoch>-<seq>". A bounded replay buffer serves clients
    resuming with Last-Event-ID; a token from another process epoch, or
    older than the buffer, yields a single "resync" event instead.

Dependencies:
    - app.services.game_schedule
    - app.services.reveal
    - app.config (singleton wiring only)
    - app.utils
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from fastapi import status

from app.config import settings
from app.errors import PickemError
from app.services.game_schedule import game_schedule
from app.services.reveal import redact_event_data
from app.utils import utcnow

logger = logging.getLogger("pickem.live_stream")


class StreamCapacityError(PickemError):
    kind = "stream_full"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


@dataclass(frozen=True)
class LiveEvent:
    event_id: str
    seq: int
    event_type: str
    data: dict[str, Any]
    occurred_at: datetime


@dataclass
class Subscription:
    subscription_id: str
    viewer_id: str | None
    queue: asyncio.Queue
    connected_at: datetime
    last_event_id: str | None = None
    closed: bool = False
    delivered: int = 0


# Queue sentinels
_CLOSE = object()
_RESYNC = object()

# How long a fetched kickoff map is reused across subscribers
_KICKOFF_CACHE_SECONDS = 5.0

KickoffLookup = Callable[[int, int], Awaitable[dict[str, datetime]]]


class LiveRevealStream:
    def __init__(
        self,
        *,
        replay_buffer_size: int,
        queue_size: int,
        heartbeat_seconds: float,
        max_subscribers: int,
        clock: Callable[[], datetime] = utcnow,
        kickoff_lookup: Optional[KickoffLookup] = None,
    ) -> None:
        self._epoch = uuid.uuid4().hex[:12]
        self._seq = 0
        self._buffer: deque[LiveEvent] = deque(maxlen=max(1, int(replay_buffer_size)))
        self._queue_size = max(1, int(queue_size))
        self._heartbeat_seconds = max(0.01, float(heartbeat_seconds))
        self._max_subscribers = max(1, int(max_subscribers))
        self._clock = clock
        self._kickoff_lookup = kickoff_lookup
        self._kickoff_cache: dict[tuple[int, int], tuple[float, dict[str, datetime]]] = {}
        self._subscribers: dict[str, Subscription] = {}
        self._lock = asyncio.Lock()
        self._published_total = 0
        self._dropped_subscribers = 0
        self._resyncs = 0

    @property
    def epoch(self) -> str:
        return self._epoch

    @property
    def last_event_id(self) -> str | None:
        """Id of the newest event; a snapshot taken now resumes from here."""
        return f"{self._epoch}-{self._seq}" if self._seq else None

    async def publish(self, event_type: str, data: dict[str, Any]) -> LiveEvent:
        """Record an event and fan it out. Never waits on a subscriber."""
        overflowed: list[Subscription] = []
        async with self._lock:
            self._seq += 1
            event = LiveEvent(
                event_id=f"{self._epoch}-{self._seq}",
                seq=self._seq,
                event_type=event_type,
                data=data,
                occurred_at=self._clock(),
            )
            self._buffer.append(event)
            for sub in self._subscribers.values():
                try:
                    sub.queue.put_nowait(event)
                except asyncio.QueueFull:
                    overflowed.append(sub)
            for sub in overflowed:
                self._drop_locked(sub, reason="queue_full")
            self._published_total += 1
        return event

    async def subscribe(
        self, viewer_id: str | None = None, last_event_id: str | None = None,
    ) -> Subscription:
        """Register a subscriber, queueing any replay owed to ``last_event_id``."""
        async with self._lock:
            if len(self._subscribers) >= self._max_subscribers:
                raise StreamCapacityError("Too many live viewers, retry shortly.")

            sub = Subscription(
                subscription_id=uuid.uuid4().hex,
                viewer_id=viewer_id,
                queue=asyncio.Queue(maxsize=self._queue_size + 1),
                connected_at=self._clock(),
                last_event_id=last_event_id,
            )
            backlog, needs_resync = self._replay_after(last_event_id)
            if len(backlog) > self._queue_size:
                backlog, needs_resync = [], True
            if needs_resync:
                self._resyncs += 1
                sub.queue.put_nowait(_RESYNC)
            for event in backlog:
                sub.queue.put_nowait(event)
            self._subscribers[sub.subscription_id] = sub

        logger.info(
            "Live subscriber joined: id=%s viewer=%s replay=%d resync=%s",
            sub.subscription_id, viewer_id or "guest", len(backlog), needs_resync,
        )
        return sub

    async def unsubscribe(self, subscription_id: str) -> None:
        async with self._lock:
            sub = self._subscribers.pop(subscription_id, None)
        if sub is not None:
            sub.closed = True
            logger.info("Live subscriber left: id=%s delivered=%d",
                        subscription_id, sub.delivered)

    async def iter_messages(self, sub: Subscription) -> AsyncIterator[dict[str, Any]]:
        """Yield rendered messages for one subscriber until it is closed.

        Yields ``{"comment": "keepalive"}`` after heartbeat_seconds of silence.
        Removes the subscriber when the consumer stops iterating.
        """
        try:
            while True:
                try:
                    item = await asyncio.wait_for(sub.queue.get(), timeout=self._heartbeat_seconds)
                except asyncio.TimeoutError:
                    if sub.closed:
                        return
                    yield {"comment": "keepalive"}
                    continue

                if item is _CLOSE:
                    return
                if item is _RESYNC:
                    yield {
                        "id": None,
                        "event": "resync",
                        "data": {"epoch": self._epoch, "reason": "replay_unavailable"},
                    }
                    continue

                kickoffs = await self._current_kickoffs(item)
                message = self.render(item, viewer_id=sub.viewer_id, kickoffs=kickoffs)
                sub.last_event_id = item.event_id
                sub.delivered += 1
                yield message
        finally:
            await self.unsubscribe(sub.subscription_id)

    def render(
        self,
        event: LiveEvent,
        *,
        viewer_id: str | None,
        kickoffs: Optional[dict[str, datetime]] = None,
    ) -> dict[str, Any]:
        """Redact an event for one viewer against the current clock.

        Without ``kickoffs`` the map stored with the event is used.
        """
        return {
            "id": event.event_id,
            "event": event.event_type,
            "data": redact_event_data(
                event.data, viewer_id=viewer_id, now=self._clock(), kickoffs=kickoffs,
            ),
        }

    async def _current_kickoffs(self, event: LiveEvent) -> Optional[dict[str, datetime]]:
        """Kickoffs of the event's week from the schedule, or None to fall
        back to the map captured at publish time."""
        data = event.data
        if self._kickoff_lookup is None or "kickoffs" not in data:
            return None
        key = (data.get("week"), data.get("season"))
        if None in key:
            return None
        cached = self._kickoff_cache.get(key)
        if cached and time.monotonic() - cached[0] < _KICKOFF_CACHE_SECONDS:
            return cached[1]
        try:
            kickoffs = await self._kickoff_lookup(*key)
        except PickemError as exc:
            logger.warning("Kickoff lookup failed for week %s/%s, using event snapshot: %s",
                           key[0], key[1], exc.message)
            return None
        self._kickoff_cache[key] = (time.monotonic(), kickoffs)
        return kickoffs

    async def close(self) -> None:
        """Disconnect every subscriber (shutdown)."""
        async with self._lock:
            subs = list(self._subscribers.values())
            for sub in subs:
                self._drop_locked(sub, reason="shutdown")

    def stats(self) -> dict[str, Any]:
        return {
            "epoch": self._epoch,
            "last_seq": self._seq,
            "buffered_events": len(self._buffer),
            "subscribers": len(self._subscribers),
            "max_subscribers": self._max_subscribers,
            "published_total": self._published_total,
            "dropped_subscribers": self._dropped_subscribers,
            "resyncs": self._resyncs,
        }

    def _replay_after(self, token: str | None) -> tuple[list[LiveEvent], bool]:
        if not token:
            return [], False
        epoch, _, seq_text = token.rpartition("-")
        if epoch != self._epoch or not seq_text.isdigit():
            return [], True
        seq = int(seq_text)
        if seq >= self._seq:
            return [], False
        oldest = self._buffer[0].seq if self._buffer else self._seq + 1
        if seq + 1 < oldest:
            return [], True
        return [e for e in self._buffer if e.seq > seq], False

    def _drop_locked(self, sub: Subscription, *, reason: str) -> None:
        # Caller holds self._lock. Pending events are discarded: the client
        # resumes from its last delivered id via the replay buffer.
        self._subscribers.pop(sub.subscription_id, None)
        sub.closed = True
        while not sub.queue.empty():
            sub.queue.get_nowait()
        sub.queue.put_nowait(_CLOSE)
        self._dropped_subscribers += 1
        logger.warning("Live subscriber dropped: id=%s viewer=%s reason=%s",
                       sub.subscription_id, sub.viewer_id or "guest", reason)


live_stream = LiveRevealStream(
    replay_buffer_size=settings.LIVE_REPLAY_BUFFER_SIZE,
    queue_size=settings.LIVE_SUBSCRIBER_QUEUE_SIZE,
    heartbeat_seconds=settings.LIVE_HEARTBEAT_SECONDS,
    max_subscribers=settings.LIVE_MAX_SUBSCRIBERS,
    kickoff_lookup=game_schedule.week_kickoffs,
)
