"""Live reveal feed over Server-Sent Events.

Guests may subscribe; they only ever receive revealed pick data. Clients
resume after a reconnect with the standard Last-Event-ID header (or the
`last_event_id` query parameter where headers cannot be set).
"""

import json
from typing import Any, AsyncIterator, Optional

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import StreamingResponse

from app.services.auth_service import get_optional_user
from app.services.live_stream import Subscription, live_stream

router = APIRouter(prefix="/api/live", tags=["live"])

_RETRY_MS = 5000


def format_sse(message: dict[str, Any]) -> str:
    """Encode one stream message as an SSE frame."""
    if "comment" in message:
        return f": {message['comment']}\n\n"
    lines = []
    if message.get("id"):
        lines.append(f"id: {message['id']}")
    lines.append(f"event: {message['event']}")
    lines.append("data: " + json.dumps(message["data"], separators=(",", ":"), default=str))
    return "\n".join(lines) + "\n\n"


async def _frames(sub: Subscription) -> AsyncIterator[str]:
    try:
        yield f"retry: {_RETRY_MS}\n\n"
        async for message in live_stream.iter_messages(sub):
            yield format_sse(message)
    finally:
        await live_stream.unsubscribe(sub.subscription_id)


@router.get("/stream")
async def stream(
    last_event_id: Optional[str] = Query(None),
    last_event_id_header: Optional[str] = Header(None, alias="Last-Event-ID"),
    user=Depends(get_optional_user),
):
    sub = await live_stream.subscribe(
        viewer_id=user["id"] if user else None,
        last_event_id=last_event_id_header or last_event_id,
    )
    return StreamingResponse(
        _frames(sub),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/stats")
async def stream_stats():
    return live_stream.stats()
