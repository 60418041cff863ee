"""
backend/app/errors.py

Purpose:
    Domain error taxonomy. Services raise these; the exception handler in
    app.main turns them into a structured response with a stable `kind`.

Dependencies:
    - fastapi.status
"""

from __future__ import annotations

from typing import Any

from fastapi import status


class PickemError(Exception):
    """Base class for all recoverable business errors."""

    kind = "error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self, *, diagnostic: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind, "detail": self.message}
        if self.details:
            payload["context"] = self.details
        if diagnostic and self.__cause__ is not None:
            payload["cause"] = repr(self.__cause__)
        return payload


class ValidationError(PickemError):
    kind = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class AuthzError(PickemError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(PickemError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(PickemError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class AlreadyUsed(ConflictError):
    """A touchdown scorer was already claimed by this user this season."""

    kind = "scorer_already_used"


class NotReadyError(PickemError):
    kind = "not_ready"
    status_code = status.HTTP_409_CONFLICT


class LockedPickError(PickemError):
    kind = "pick_locked"
    status_code = status.HTTP_423_LOCKED


class UpstreamError(PickemError):
    kind = "upstream_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
