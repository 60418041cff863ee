"""
backend/app/middleware/logging.py

Purpose:
    One JSON access-log line per request under the "pickem" logger, plus the
    process-wide logging setup. Client addresses are hashed, never logged.
    Long-lived SSE responses are logged when headers go out, not at the end
    of the stream.
"""

import hashlib
import json
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("pickem")

_REQUEST_ID_HEADER = "X-Request-ID"


def _client_hash(request: Request):
    if not request.client or not request.client.host:
        return None
    return hashlib.sha256(request.client.host.encode()).hexdigest()[:12]


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        # Keep a caller-supplied id so logs line up across a proxy hop
        request_id = (request.headers.get(_REQUEST_ID_HEADER) or uuid.uuid4().hex)[:32]
        request.state.request_id = request_id
        start = time.perf_counter()

        response: Response = await call_next(request)

        entry = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            "client_ip_hash": _client_hash(request),
        }
        error_kind = getattr(request.state, "error_kind", None)
        if error_kind:
            entry["error_kind"] = error_kind
        if response.headers.get("content-type", "").startswith("text/event-stream"):
            entry["stream"] = True

        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(level, json.dumps(entry))

        response.headers[_REQUEST_ID_HEADER] = request_id
        return response


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    # Motor/pymongo heartbeat chatter drowns the access log at DEBUG
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
