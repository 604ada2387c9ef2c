"""Live change notifications over WebSocket.

Clients receive ``{"event": "update_users", ...}`` whenever the user list may
have changed, and ``update_history_<nickname>`` events for the nickname they
asked about. Events carry no data; clients re-query the REST endpoints.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket

from beaconhub.events.broker import Broker, Subscription, Topic, get_broker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        event = await subscription.get()
        await websocket.send_json(event.to_message())


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/events")
async def event_stream(
    websocket: WebSocket,
    nickname: str | None = None,
    broker: Broker = Depends(get_broker),
) -> None:
    topics = [Topic.users()]
    if nickname:
        topics.append(Topic.history(nickname))

    # Subscribe before accepting so nothing published after the handshake is missed
    subscription = broker.subscribe(*topics)
    await websocket.accept()
    logger.info("Event client connected (nickname=%s)", nickname)

    forward = asyncio.create_task(_forward(websocket, subscription))
    listen = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        done, pending = await asyncio.wait({forward, listen}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.debug("Event stream ended: %r", task.exception())
    finally:
        forward.cancel()
        listen.cancel()
        broker.unsubscribe(subscription)
        logger.info(
            "Event client disconnected (nickname=%s, dropped=%d)", nickname, subscription.dropped
        )
