"""
WebSocket endpoint for live prices.

Clients connect to /ws/prices and receive a ``priceUpdate`` message on
every refresh tick of the PriceBroadcaster. The current cache snapshot is
sent right after the connection is accepted. Incoming messages are ignored.
"""
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from moonfolio.app.logging_config import get_logger
from moonfolio.app.services.price_broadcaster import build_update_message

logger = get_logger(__name__)

ws_router = APIRouter(prefix="/ws", tags=["WS (Live prices)"])


@ws_router.websocket("/prices")
async def prices_socket(websocket: WebSocket):
    broadcaster = websocket.app.state.runtime.broadcaster
    await websocket.accept()
    snapshot = broadcaster.price_service.cache.snapshot
    await websocket.send_text(build_update_message(snapshot).model_dump_json())
    broadcaster.add(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Price subscriber disconnected")
    finally:
        broadcaster.remove(websocket)
