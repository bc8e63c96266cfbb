"""
Realtime change stream.

Websocket clients receive every committed change of one collection
("vehicles" or "schedules") as a JSON event. Vehicle streams start with a
SNAPSHOT message holding the current fleet view. A client that falls more
than `realtime_queue_size` events behind is closed with 1013 and should
reconnect for a fresh snapshot.
"""

import asyncio
import logging
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from fleet_dashboard.app.core.config import settings
from fleet_dashboard.app.core.dependencies import get_change_feed, get_fleet_view
from fleet_dashboard.app.services.change_feed import ChangeFeed, ChangeEvent, COLLECTIONS, VEHICLES
from fleet_dashboard.app.services.fleet_view import FleetView

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])

EVENT_SNAPSHOT = "SNAPSHOT"


@router.websocket("/realtime/{collection}")
async def stream_changes(
    websocket: WebSocket,
    collection: str,
    feed: ChangeFeed = Depends(get_change_feed),
    view: FleetView = Depends(get_fleet_view)
):
    if collection not in COLLECTIONS:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=settings.realtime_queue_size)
    overflow = asyncio.Event()

    def enqueue(event: ChangeEvent) -> None:
        if queue.full():
            overflow.set()
        else:
            queue.put_nowait(event)

    subscription = feed.subscribe(collection, enqueue)

    async def forward():
        while True:
            event = await queue.get()
            await websocket.send_text(event.to_json())

    async def drain():
        # Client messages are ignored; receiving detects the disconnect
        while True:
            await websocket.receive_text()

    tasks = []
    try:
        if collection == VEHICLES:
            await websocket.send_json({
                "event_type": EVENT_SNAPSHOT,
                "collection": VEHICLES,
                "vehicles": [vehicle.model_dump(mode="json") for vehicle in view.list()],
            })

        tasks = [
            asyncio.create_task(forward()),
            asyncio.create_task(drain()),
            asyncio.create_task(overflow.wait()),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

        disconnected = False
        for task in done:
            error = task.exception()
            if isinstance(error, WebSocketDisconnect):
                disconnected = True
            elif error is not None:
                logger.warning(
                    "Realtime stream failed",
                    extra={"collection": collection, "error": str(error)}
                )

        if disconnected:
            logger.debug("Realtime client disconnected", extra={"collection": collection})
        elif overflow.is_set():
            logger.warning("Realtime client fell behind, closing", extra={"collection": collection})
            await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
    except WebSocketDisconnect:
        logger.debug("Realtime client disconnected", extra={"collection": collection})
    finally:
        subscription.unsubscribe()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
