"""Broadcast-scoped membership tokens."""

import time

import jwt
from loguru import logger

from app.app_config import get_app_environ_config
from app.schemas import MemberRole
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .broadcast_models import BroadcastClaims

_ALGORITHM = "HS256"


def issue_broadcast_token(user_id: str, broadcast_id: str, role: MemberRole) -> str:
    """Sign a token carrying {user_id, broadcast_id, role}."""
    app_config = get_app_environ_config()
    now = int(time.time())
    payload = {
        "user_id": user_id,
        "broadcast_id": broadcast_id,
        "role": str(role),
        "iat": now,
        "exp": now + app_config.BROADCAST_TOKEN_TTL_SECONDS,
    }
    return jwt.encode(payload, app_config.BROADCAST_TOKEN_SECRET, algorithm=_ALGORITHM)


def decode_broadcast_token(token: str) -> BroadcastClaims:
    """Verify signature and expiry of a broadcast token.

    Raises:
        AppError: If the token is invalid, expired or malformed (E_BAD_TOKEN).
    """
    try:
        payload = jwt.decode(
            token,
            get_app_environ_config().BROADCAST_TOKEN_SECRET,
            algorithms=[_ALGORITHM],
        )
        return BroadcastClaims(
            user_id=payload["user_id"],
            broadcast_id=payload["broadcast_id"],
            role=MemberRole(payload["role"]),
        )
    except (jwt.PyJWTError, KeyError, ValueError) as e:
        logger.debug(f"Invalid broadcast token: {e}")
        raise AppError(
            errcode=AppErrorCode.E_BAD_TOKEN,
            errmesg="Invalid broadcast token",
            status_code=HttpStatusCode.UNAUTHORIZED,
        ) from e
