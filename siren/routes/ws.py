import asyncio
import json
import logging

from fastapi import APIRouter, Depends, WebSocket
from starlette.websockets import WebSocketDisconnect

from siren.routes.items.dependencies import get_alert_store, get_hub
from siren.services.alert_store import AlertStore
from siren.services.hub import NotificationHub, Subscriber

router = APIRouter()

logger = logging.getLogger("ws")

# Tiempo máximo para escribir un mensaje al viewer
WRITE_WAIT = 10.0
# Intervalo de keep-alive
PING_PERIOD = 54.0

PING_MESSAGE = json.dumps({"type": "ping"})

# Errores que indican que la conexión ya no sirve
CONNECTION_ERRORS = (WebSocketDisconnect, asyncio.TimeoutError, RuntimeError, OSError)


async def read_pump(websocket: WebSocket) -> None:
    """
    Consume lo que envíe el viewer solo para detectar la desconexión; no se
    esperan mensajes de aplicación.
    """
    while True:
        message = await websocket.receive()
        if message.get("type") == "websocket.disconnect":
            return


async def write_pump(
    websocket: WebSocket,
    subscriber: Subscriber,
    ping_period: float = PING_PERIOD,
    write_wait: float = WRITE_WAIT,
) -> None:
    """
    Entrega al viewer los mensajes publicados por el hub y envía un ping
    cada ``ping_period`` segundos. Termina cuando el hub cierra el
    subscriber o cuando falla una escritura.
    """
    while True:
        try:
            message = await asyncio.wait_for(subscriber.next_message(), timeout=ping_period)
        except asyncio.TimeoutError:
            await asyncio.wait_for(websocket.send_text(PING_MESSAGE), timeout=write_wait)
            continue

        if message is None:
            return

        await asyncio.wait_for(websocket.send_text(message.decode()), timeout=write_wait)


async def serve_subscriber(
    websocket: WebSocket,
    hub: NotificationHub,
    subscriber: Subscriber,
    ping_period: float = PING_PERIOD,
    write_wait: float = WRITE_WAIT,
) -> None:
    """Corre ambas direcciones hasta que una termine y libera la conexión."""
    tasks = [
        asyncio.ensure_future(read_pump(websocket)),
        asyncio.ensure_future(write_pump(websocket, subscriber, ping_period, write_wait)),
    ]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, CONNECTION_ERRORS):
                logger.error("WebSocket error for %r: %s", subscriber, exc)
            elif exc is not None:
                logger.debug("WebSocket closed for %r: %r", subscriber, exc)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        hub.unregister(subscriber)
        subscriber.close()
        try:
            await websocket.close()
        except CONNECTION_ERRORS:
            pass


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    store: AlertStore = Depends(get_alert_store),
    hub: NotificationHub = Depends(get_hub),
):
    await websocket.accept()

    client = websocket.client
    subscriber = hub.new_subscriber(name=f"{client.host}:{client.port}" if client else "")
    hub.register(subscriber)

    # Estado inicial para el viewer recién conectado
    hub.publish_state(store)

    await serve_subscriber(websocket, hub, subscriber)
