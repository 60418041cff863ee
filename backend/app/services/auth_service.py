"""Identity for request handlers. Tokens are issued by the account service;
this module only verifies them and loads the user document."""

import logging
from typing import Optional

import jwt
from bson import ObjectId
from fastapi import Depends, HTTPException, Request, status
from jwt.exceptions import InvalidTokenError as JWTError

from app.config import settings
from app.database import get_db
from app.errors import AuthzError

logger = logging.getLogger("pickem.auth")

ALGORITHM = "HS256"


def decode_jwt(token: str) -> dict:
    """Decode a JWT, trying the current secret first, then the old one.

    JWT_SECRET_OLD stays set while tokens signed before a rotation are
    still within their lifetime.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError:
        if settings.JWT_SECRET_OLD:
            return jwt.decode(token, settings.JWT_SECRET_OLD, algorithms=[ALGORITHM])
        raise


def _token_from_request(request: Request) -> Optional[str]:
    token = request.cookies.get("access_token")
    if token:
        return token
    header = request.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value:
        return value.strip()
    return None


def _user_lookup(user_id: str) -> dict:
    if ObjectId.is_valid(user_id):
        return {"_id": ObjectId(user_id), "is_deleted": {"$ne": True}}
    return {"_id": user_id, "is_deleted": {"$ne": True}}


async def get_current_user(request: Request, db=Depends(get_db)) -> dict:
    """FastAPI dependency: verified user from the access token.

    The returned document carries ``id`` as a string alongside ``_id``.
    """
    token = _token_from_request(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    try:
        payload = decode_jwt(token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )

    if payload.get("type", "access") != "access" or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )

    user = await db.users.find_one(_user_lookup(str(payload["sub"])))
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    user["id"] = str(user["_id"])
    return user


async def get_optional_user(request: Request, db=Depends(get_db)) -> Optional[dict]:
    """Like get_current_user, but guests (no or bad token) yield None."""
    if not _token_from_request(request):
        return None
    try:
        return await get_current_user(request, db)
    except HTTPException:
        logger.debug("Ignoring invalid token on public route %s", request.url.path)
        return None


async def get_admin_user(user: dict = Depends(get_current_user)) -> dict:
    """FastAPI dependency: requires an authenticated admin user."""
    if not user.get("is_admin"):
        raise AuthzError("Admin access required.")
    return user
