"""Insert-only audit trail for administrative actions (prop resolution,
manual scoring runs). No update or delete operations are exposed."""

import logging
from typing import Optional

from fastapi import Request

import app.database as _db
from app.utils import utcnow

logger = logging.getLogger("pickem.audit")


def mask_ip(ip: str) -> str:
    """Drop the host part of an address: 10.0.4.17 -> 10.0.4.xxx."""
    if not ip:
        return ""
    if "." in ip:
        octets = ip.split(".")
        return ".".join(octets[:3] + ["xxx"]) if len(octets) == 4 else ip
    if ":" in ip:
        head, _, _ = ip.rpartition(":")
        return f"{head}:xxx" if head else ip
    return ip


def client_ip(request: Optional[Request]) -> str:
    """Originating client address; the first X-Forwarded-For hop wins."""
    if request is None:
        return ""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


async def log_audit(
    *,
    actor_id: str,
    target_id: str,
    action: str,
    metadata: Optional[dict] = None,
    request: Optional[Request] = None,
) -> None:
    """Append one audit record.

    Args:
        actor_id: Admin user id, or "SYSTEM" for scheduled jobs.
        target_id: Affected entity, e.g. "week:2025-3" or a pick id list.
        action: Identifier such as "ADMIN_RESOLVE_PROPS".
        metadata: Extra context (outcome, counts).
        request: Incoming request, used for the masked client address.
    """
    doc = {
        "timestamp": utcnow(),
        "actor_id": actor_id,
        "target_id": target_id,
        "action": action,
        "metadata": metadata or {},
        "ip_masked": mask_ip(client_ip(request)),
    }
    try:
        await _db.db.audit_logs.insert_one(doc)
    except Exception:
        # The audited action already happened; a lost audit row must not fail it
        logger.exception("Failed to write audit log: action=%s actor=%s", action, actor_id)
