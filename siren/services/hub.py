import asyncio
import logging
from typing import Optional, Set

from siren.services.alert_store import AlertStore

logger = logging.getLogger(__name__)

_REGISTER = "register"
_UNREGISTER = "unregister"
_PUBLISH = "publish"
_STATE = "state"
_STOP = "stop"


class Subscriber:
    """
    Conexión de un viewer vista desde el hub.

    Tiene un buffer de salida acotado; el hub nunca espera a que haya
    espacio. ``next_message()`` devuelve None cuando el subscriber se cerró.
    """

    def __init__(self, buffer_size: int = 256, name: str = ""):
        self.name = name
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=buffer_size + 1)
        self._buffer_size = buffer_size
        self.closed = False

    def __repr__(self) -> str:
        return f"Subscriber({self.name or id(self)})"

    def offer(self, message: bytes) -> bool:
        """Encola sin bloquear. False si está cerrado o el buffer está lleno."""
        if self.closed or self._queue.qsize() >= self._buffer_size:
            return False
        self._queue.put_nowait(message)
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        # Lugar reservado para el marcador de fin
        self._queue.put_nowait(None)

    async def next_message(self) -> Optional[bytes]:
        return await self._queue.get()


class NotificationHub:
    """
    Reparte el estado de las alertas a todos los viewers conectados.

    Registro, baja y publicación se serializan como peticiones en una única
    cola que procesa una sola tarea; nadie más toca el conjunto de
    subscribers. Todos los métodos públicos pueden llamarse desde cualquier
    hilo y nunca bloquean.
    """

    def __init__(self, buffer_size: int = 256):
        self.buffer_size = buffer_size
        self._subscribers: Set[Subscriber] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._requests: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def new_subscriber(self, name: str = "") -> Subscriber:
        return Subscriber(buffer_size=self.buffer_size, name=name)

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        if self.running:
            return
        self._loop = loop or asyncio.get_running_loop()
        self._requests = asyncio.Queue()
        self._task = self._loop.create_task(self._run())
        logger.debug("Notification hub started")

    async def stop(self) -> None:
        if not self.running:
            return
        self._submit(_STOP, None)
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    def register(self, subscriber: Subscriber) -> None:
        self._submit(_REGISTER, subscriber)

    def unregister(self, subscriber: Subscriber) -> None:
        self._submit(_UNREGISTER, subscriber)

    def publish(self, payload: bytes) -> None:
        self._submit(_PUBLISH, payload)

    def publish_state(self, store: AlertStore) -> None:
        """
        Avisa de que el store cambió.

        La foto del store se toma dentro de la tarea del hub al procesar la
        petición, así la última publicación refleja siempre el último estado.
        """
        self._submit(_STATE, store)

    async def flush(self) -> None:
        """Espera a que se procesen todas las peticiones ya enviadas."""
        if self._requests is not None and self.running:
            await self._requests.join()

    def _submit(self, action: str, item) -> None:
        if self._loop is None or self._loop.is_closed() or self._requests is None:
            logger.debug("Notification hub not running; dropping %s request", action)
            return
        try:
            running_loop = asyncio.get_running_loop()
        except RuntimeError:
            running_loop = None

        if running_loop is self._loop:
            self._requests.put_nowait((action, item))
        else:
            self._loop.call_soon_threadsafe(self._requests.put_nowait, (action, item))

    async def _run(self) -> None:
        try:
            while True:
                action, item = await self._requests.get()
                try:
                    if action == _STOP:
                        break
                    if action == _REGISTER:
                        self._subscribers.add(item)
                        logger.debug("Registered %r (%d connected)", item, len(self._subscribers))
                    elif action == _UNREGISTER:
                        self._drop(item)
                    elif action == _PUBLISH:
                        self._broadcast(item)
                    elif action == _STATE:
                        self._broadcast(item.update_message().model_dump_json().encode())
                finally:
                    self._requests.task_done()
        finally:
            for subscriber in list(self._subscribers):
                self._drop(subscriber)
            # Peticiones que quedaron sin procesar
            while not self._requests.empty():
                self._requests.get_nowait()
                self._requests.task_done()
            logger.debug("Notification hub stopped")

    def _drop(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.discard(subscriber)
            subscriber.close()
            logger.debug("Unregistered %r (%d connected)", subscriber, len(self._subscribers))

    def _broadcast(self, payload: bytes) -> None:
        for subscriber in list(self._subscribers):
            if not subscriber.offer(payload):
                logger.warning("Dropping slow subscriber %r: send buffer full", subscriber)
                self._drop(subscriber)
