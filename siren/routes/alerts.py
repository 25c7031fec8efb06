import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from siren.config import Settings
from siren.models.alert_model import UpdateMessage
from siren.routes.items.dependencies import get_alert_store, get_settings_dep
from siren.services.alert_store import AlertStore

router = APIRouter()

logger = logging.getLogger("alerts")

SOUND_MEDIA_TYPES = {
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".ogg": "audio/ogg",
}


@router.get("/alerts", response_model=UpdateMessage)
def list_alerts(store: AlertStore = Depends(get_alert_store)):
    return store.update_message()


@router.get("/status")
def status(store: AlertStore = Depends(get_alert_store)):
    return {"hasUnacknowledged": store.has_unacknowledged_firing()}


@router.post("/acknowledge")
def acknowledge(id: Optional[str] = None, store: AlertStore = Depends(get_alert_store)):
    if not id:
        raise HTTPException(status_code=400, detail="Missing 'id' parameter")

    store.acknowledge(id)
    return {"status": "ok"}


@router.post("/clear")
def clear(store: AlertStore = Depends(get_alert_store)):
    cleared = store.clear_acknowledged_and_resolved()
    logger.info("Cleared %d alerts", cleared)
    return {"cleared": cleared}


@router.get("/sound")
def sound(settings: Settings = Depends(get_settings_dep)):
    sound_path = os.path.abspath(settings.sound_effect_file_path)

    if not os.path.isfile(sound_path):
        raise HTTPException(status_code=404, detail=f"Sound file not found: {sound_path}")

    ext = os.path.splitext(sound_path)[1].lower()
    return FileResponse(sound_path, media_type=SOUND_MEDIA_TYPES.get(ext, "audio/wav"))
