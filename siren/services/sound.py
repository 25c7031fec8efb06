import asyncio
import logging
import shutil
import sys
from typing import Optional

logger = logging.getLogger(__name__)

# Orden de preferencia: macOS, PulseAudio, ALSA
PLAYERS = ("afplay", "paplay", "aplay")


def find_player() -> Optional[str]:
    """Devuelve la ruta del primer reproductor disponible en el PATH, o None."""
    for name in PLAYERS:
        path = shutil.which(name)
        if path:
            return path
    return None


async def launch(player: str, sound_path: str) -> asyncio.subprocess.Process:
    """Lanza el reproductor sobre el archivo sin esperar a que termine."""
    return await asyncio.create_subprocess_exec(
        player,
        sound_path,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
    )


def ring_bell() -> None:
    """Aviso mínimo cuando no hay reproductor instalado."""
    sys.stdout.write("\a")
    sys.stdout.flush()
