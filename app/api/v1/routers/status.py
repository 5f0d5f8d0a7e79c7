"""WebSocket delivery of video status and collaboration events.

Clients authenticate with query parameters since browsers cannot set headers
on a WebSocket handshake: `token` is the identity bearer token and, for the
collaboration channel, `broadcast_token` is the broadcast token.
"""

import asyncio

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from loguru import logger
from pydantic import BaseModel

from app.api.v1.dependency import verify_user_token
from app.domain.broadcast.broadcast_domain import BroadcastService
from app.domain.broadcast.broadcast_token import decode_broadcast_token
from app.domain.video.status_bus import (
    COLLABORATION_STATUS_TOPIC,
    VIDEO_STATUS_TOPIC,
    StatusBus,
    Subscription,
)
from app.utils.app_errors import AppError

router = APIRouter(prefix="/ws", tags=["Status"])


async def _stream_events(websocket: WebSocket, subscription: Subscription) -> None:
    """Forward events until the client goes away.

    A pending receive() is raced against the next event so a disconnect is
    noticed even when no events arrive.
    """
    receiver = asyncio.create_task(websocket.receive())
    try:
        while True:
            next_event = asyncio.create_task(subscription.get())
            done, _ = await asyncio.wait(
                {receiver, next_event},
                return_when=asyncio.FIRST_COMPLETED,
            )

            if receiver in done:
                message = receiver.result()
                if message["type"] == "websocket.disconnect":
                    next_event.cancel()
                    return
                # Client messages are ignored.
                receiver = asyncio.create_task(websocket.receive())

            if next_event not in done:
                next_event.cancel()
                continue

            event: BaseModel = next_event.result()
            await websocket.send_json(event.model_dump(mode="json"))
    finally:
        receiver.cancel()


@router.websocket("/video_status")
async def video_status(
    websocket: WebSocket,
    token: str = Query(...),
):
    """Transcode outcomes for videos uploaded by the caller."""
    try:
        user = verify_user_token(token)
    except AppError as e:
        logger.info(f"video_status rejected: {e.errmesg}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    bus: StatusBus = websocket.app.state.status_bus
    async with bus.subscribe(VIDEO_STATUS_TOPIC, user.user_id) as subscription:
        await websocket.accept()
        try:
            await _stream_events(websocket, subscription)
        except WebSocketDisconnect:
            pass
    logger.debug(f"video_status closed for {user.user_id}")


@router.websocket("/collaboration_status")
async def collaboration_status(
    websocket: WebSocket,
    token: str = Query(...),
    broadcast_token: str = Query(...),
):
    """Collaboration requests and answers addressed to the caller's broadcast."""
    try:
        user = verify_user_token(token)
        claims = decode_broadcast_token(broadcast_token)
    except AppError as e:
        logger.info(f"collaboration_status rejected: {e.errmesg}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    if claims.user_id != user.user_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    service: BroadcastService = websocket.app.state.broadcast_service
    check = await service.authenticate_broadcast_token(claims)
    if not check.ok:
        logger.info(f"collaboration_status rejected: {check.reason}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    bus: StatusBus = websocket.app.state.status_bus
    async with bus.subscribe(COLLABORATION_STATUS_TOPIC, claims.broadcast_id) as subscription:
        await websocket.accept()
        try:
            await _stream_events(websocket, subscription)
        except WebSocketDisconnect:
            pass
    logger.debug(f"collaboration_status closed for {claims.broadcast_id}")
