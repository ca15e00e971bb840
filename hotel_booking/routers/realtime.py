"""
WebSocket relay for booking notifications.

Clients connect through the gateway, which injects the same identity headers
as for HTTP requests. Each socket is bound to one pub/sub channel and simply
forwards every message published on it.
"""

import asyncio

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from loguru import logger

from hotel_booking.deps import CurrentUser, parse_identity
from hotel_booking.notifications import (
    ADMIN_CHANNEL,
    Notifier,
    get_notifier,
    user_channel,
)

router = APIRouter(prefix="/ws", tags=["realtime"])


def _identify(websocket: WebSocket) -> CurrentUser | None:
    return parse_identity(
        websocket.headers.get("x-user-id", ""),
        websocket.headers.get("x-username", ""),
        websocket.headers.get("x-user-scopes", ""),
    )


async def _relay(websocket: WebSocket, notifier: Notifier, channel: str) -> None:
    await websocket.accept()
    logger.debug("Socket subscribed to {}", channel)

    async def _forward() -> None:
        async for message in notifier.subscribe(channel):
            await websocket.send_json(message)

    async def _drain() -> None:
        # inbound frames are ignored; this only notices the client leaving
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass

    tasks = {asyncio.create_task(_forward()), asyncio.create_task(_drain())}
    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)

    for task in done:
        exc = task.exception()
        if exc is not None and not isinstance(exc, WebSocketDisconnect):
            logger.warning("Relay on {} stopped: {!r}", channel, exc)

    logger.debug("Socket left {}", channel)
    try:
        await websocket.close()
    except RuntimeError:
        # already closed by the client
        pass


@router.websocket("/user")
async def user_notifications(
    websocket: WebSocket, notifier: Notifier = Depends(get_notifier)
) -> None:
    user = _identify(websocket)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await _relay(websocket, notifier, user_channel(user.id))


@router.websocket("/admin")
async def admin_notifications(
    websocket: WebSocket, notifier: Notifier = Depends(get_notifier)
) -> None:
    user = _identify(websocket)
    if user is None or not user.is_admin:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await _relay(websocket, notifier, ADMIN_CHANNEL)
