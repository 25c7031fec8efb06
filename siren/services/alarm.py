import asyncio
import logging
from typing import Awaitable, Callable, Optional

from siren.services import sound
from siren.services.alert_store import AlertStore

logger = logging.getLogger(__name__)

Launcher = Callable[[str, str], Awaitable[asyncio.subprocess.Process]]


class AlarmController:
    """
    Hace sonar la alarma mientras haya alertas activas sin reconocer.

    Estados: inactivo o en bucle. En bucle se lanza el reproductor, se espera
    a que termine (o a la señal de parada), se hace una pausa y se vuelve a
    empezar, comprobando el store al inicio de cada vuelta.

    Cada arranque del bucle recibe un número de generación; ``stop()`` lo
    incrementa, de modo que un bucle anterior nunca puede confundirse con
    el actual aunque todavía no haya terminado de salir.
    """

    def __init__(
        self,
        store: AlertStore,
        sound_path: str,
        player: Optional[str] = None,
        pause_interval: float = 2.0,
        launcher: Launcher = sound.launch,
        bell: Callable[[], None] = sound.ring_bell,
    ):
        self.store = store
        self.sound_path = sound_path
        self.pause_interval = pause_interval
        self._player = player
        self._launcher = launcher
        self._bell = bell

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._generation = 0
        self._active = False
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._process: Optional[asyncio.subprocess.Process] = None

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def player(self) -> Optional[str]:
        return self._player

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Asocia el controlador al event loop y detecta el reproductor."""
        self._loop = loop or asyncio.get_running_loop()
        if self._player is None:
            self._player = sound.find_player()
        if self._player is None:
            logger.warning(
                "No audio player found (tried %s); falling back to terminal bell",
                ", ".join(sound.PLAYERS),
            )
        else:
            logger.info("Alarm will play %s with %s", self.sound_path, self._player)

    def on_state_changed(self) -> None:
        """Listener del store. Puede llamarse desde cualquier hilo."""
        if self._loop is None or self._loop.is_closed():
            logger.debug("Alarm controller not started; ignoring state change")
            return
        self._loop.call_soon_threadsafe(self.evaluate)

    def evaluate(self) -> None:
        """Decide si arrancar, parar o dejar la alarma como está."""
        if self.store.has_unacknowledged_firing():
            self._start_loop()
        elif self._active:
            logger.info("No unacknowledged alerts left; stopping alarm")
            self.stop()

    def _start_loop(self) -> None:
        if self._active:
            return

        self._active = True
        self._generation += 1
        generation = self._generation
        self._stop_event = asyncio.Event()

        if self._player is None:
            self._bell()
            return

        logger.info("Unacknowledged alerts present; starting alarm loop")
        self._task = self._loop.create_task(self._run(generation, self._stop_event))

    def stop(self) -> None:
        """Detiene el bucle en curso y mata el reproductor sin esperar."""
        self._generation += 1
        if self._stop_event is not None:
            self._stop_event.set()
        self._stop_event = None
        self._task = None
        self._active = False
        self._kill_process()

    async def shutdown(self) -> None:
        task = self._task
        self.stop()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _kill_process(self) -> None:
        process, self._process = self._process, None
        if process is None or process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            pass

    async def _run(self, generation: int, stop_event: asyncio.Event) -> None:
        try:
            while self._is_current(generation):
                if not self.store.has_unacknowledged_firing():
                    break

                await self._play_once(generation, stop_event)
                if not self._is_current(generation):
                    break

                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.pause_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            if self._is_current(generation):
                self._active = False
                self._task = None
                self._stop_event = None

    async def _play_once(self, generation: int, stop_event: asyncio.Event) -> None:
        try:
            process = await self._launcher(self._player, self.sound_path)
        except Exception:
            logger.exception("Failed to play sound %s", self.sound_path)
            return

        if not self._is_current(generation):
            # Se detuvo mientras arrancaba el proceso
            try:
                process.kill()
            except ProcessLookupError:
                pass
            return

        self._process = process
        wait_task = asyncio.ensure_future(process.wait())
        stop_task = asyncio.ensure_future(stop_event.wait())
        try:
            await asyncio.wait({wait_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (wait_task, stop_task):
                if not task.done():
                    task.cancel()
            if self._process is process:
                self._process = None

        if process.returncode not in (None, 0):
            logger.debug("Sound player exited with code %s", process.returncode)
