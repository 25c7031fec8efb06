import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI

from siren.config import Settings, get_settings
from siren.core.log_config import configure_logging
from siren.routes.alerts import router as alerts_router
from siren.routes.webhook import router as webhook_router
from siren.routes.ws import router as ws_router
from siren.services.alarm import AlarmController
from siren.services.alert_store import AlertStore
from siren.services.hub import NotificationHub

logger = logging.getLogger("siren")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Arranca el hub y la alarma, y los detiene al apagar."""
    store: AlertStore = app.state.store
    hub: NotificationHub = app.state.hub
    alarm: AlarmController = app.state.alarm

    hub.start()
    alarm.start()
    # El store puede traer alertas si la app se reutiliza
    alarm.evaluate()

    logger.info("Starting Alert Siren (max_alerts=%d)", store.max_size)
    yield

    await alarm.shutdown()
    await hub.stop()
    logger.info("Alert Siren stopped")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Construye la aplicación con sus dependencias explícitas: store, hub y
    controlador de alarma. Los listeners del store se conectan aquí.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    store = AlertStore(
        max_size=settings.max_alerts, keep_resolved=settings.keep_resolved_alerts
    )
    hub = NotificationHub()
    alarm = AlarmController(
        store,
        settings.sound_effect_file_path,
        pause_interval=settings.alarm_pause_seconds,
    )

    store.add_listener(alarm.on_state_changed)
    store.add_listener(lambda: hub.publish_state(store))

    app = FastAPI(title="Alert Siren", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.hub = hub
    app.state.alarm = alarm

    if settings.webhook_auth_enabled:
        logger.info(
            "Webhook authentication enabled (API Key: %s, IP Whitelist: %s, Require HTTPS: %s)",
            bool(settings.webhook_api_key),
            bool(settings.allowed_ips),
            settings.require_https,
        )

    app.include_router(webhook_router)
    app.include_router(alerts_router)
    app.include_router(ws_router)

    # ---------- Ruta de salud ----------
    @app.get("/")
    def health_check():
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run("siren.main:app", host=settings.host, port=settings.port, reload=False)
