from typing import Annotated

import jwt
from fastapi import Depends, Header, Request
from loguru import logger
from pydantic import BaseModel

from app.app_config import get_app_environ_config
from app.domain.broadcast.broadcast_domain import BroadcastService
from app.domain.broadcast.broadcast_models import BroadcastClaims
from app.domain.broadcast.broadcast_token import decode_broadcast_token
from app.domain.video.status_bus import StatusBus
from app.domain.video.video_pipeline import VideoPipeline
from app.domain.viewer.viewer_domain import ViewerService
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

BROADCAST_TOKEN_HEADER = "X-Broadcast-Token"


class User(BaseModel):
    user_id: str


def _bad_token(errmesg: str = "Invalid token") -> AppError:
    return AppError(
        errcode=AppErrorCode.E_BAD_TOKEN,
        errmesg=errmesg,
        status_code=HttpStatusCode.UNAUTHORIZED,
    )


def verify_user_token(token: str) -> User:
    """Verify an identity-provider JWT and return the caller.

    The user id is the `user_id` claim, or the part of `sub` after "|"
    (e.g. "auth0|abc123" -> "abc123").
    """
    app_config = get_app_environ_config()
    try:
        payload = jwt.decode(
            token,
            app_config.AUTH_JWT_SECRET,
            algorithms=[app_config.AUTH_JWT_ALGORITHM],
            options={"verify_aud": False},
        )
    except jwt.PyJWTError as e:
        logger.debug(f"Invalid user token: {e}")
        raise _bad_token() from e

    user_id = payload.get("user_id")
    if not user_id and payload.get("sub"):
        user_id = str(payload["sub"]).split("|")[-1]
    if not user_id:
        raise _bad_token()

    return User(user_id=user_id)


async def get_current_user(request: Request) -> User:
    # Do not log request headers here (may include secrets like Authorization).
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise _bad_token("Missing bearer token")

    user = verify_user_token(token.strip())
    logger.debug("Authenticated user_id: {}", user.user_id)
    return user


async def get_broadcast_claims(
    user: Annotated[User, Depends(get_current_user)],
    x_broadcast_token: Annotated[str | None, Header(alias=BROADCAST_TOKEN_HEADER)] = None,
) -> BroadcastClaims:
    """Verified broadcast token of the current user.

    The token must be issued to the same user as the bearer token.
    """
    if not x_broadcast_token:
        raise _bad_token("Missing broadcast token")

    claims = decode_broadcast_token(x_broadcast_token)
    if claims.user_id != user.user_id:
        raise _bad_token("Broadcast token was issued to another user")
    return claims


async def get_optional_user(request: Request) -> User | None:
    """The caller when a bearer token is sent, None for anonymous requests."""
    if not request.headers.get("Authorization"):
        return None
    return await get_current_user(request)


def get_broadcast_service(request: Request) -> BroadcastService:
    return request.app.state.broadcast_service


def get_video_pipeline(request: Request) -> VideoPipeline:
    return request.app.state.video_pipeline


def get_status_bus(request: Request) -> StatusBus:
    return request.app.state.status_bus


def get_viewer_service(request: Request) -> ViewerService:
    return request.app.state.viewer_service


CurrentUser = Annotated[User, Depends(get_current_user)]
OptionalUser = Annotated[User | None, Depends(get_optional_user)]
CurrentClaims = Annotated[BroadcastClaims, Depends(get_broadcast_claims)]
