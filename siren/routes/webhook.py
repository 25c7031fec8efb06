import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from siren.core.auth import get_client_ip, verify_webhook_access
from siren.models.alert_model import WebhookPayload
from siren.routes.items.dependencies import get_alert_store
from siren.services.alert_store import AlertStore

router = APIRouter()

logger = logging.getLogger("webhook")


@router.post("/webhook", dependencies=[Depends(verify_webhook_access)])
async def webhook(request: Request, store: AlertStore = Depends(get_alert_store)):
    """
    Endpoint para notificaciones de Alertmanager.
    - Los controles de acceso se aplican antes (si están configurados)
    - Valida el payload y lo incorpora al store
    """
    content_type = request.headers.get("content-type", "")
    if "application/json" not in content_type.lower():
        logger.warning("Unexpected content-type: %s", content_type)

    try:
        body = await request.json()
    except Exception as e:
        logger.warning("Invalid JSON body from %s: %s", get_client_ip(request), e)
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    try:
        payload = WebhookPayload.model_validate(body)
    except ValidationError as e:
        logger.warning("Invalid webhook payload from %s: %s", get_client_ip(request), e)
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    accepted = await asyncio.to_thread(store.ingest, payload)

    logger.info(
        "Received webhook: %d alerts, status: %s from IP: %s",
        len(payload.alerts),
        payload.status,
        get_client_ip(request),
    )
    return {"status": "accepted", "alerts": len(accepted)}
