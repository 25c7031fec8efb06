import hmac
import ipaddress
import logging
from typing import Iterable, Optional

from fastapi import Depends, HTTPException, Request

from siren.config import Settings
from siren.routes.items.dependencies import get_settings_dep

logger = logging.getLogger("auth")


# --------------------------------------------------------------------
# Helpers
# --------------------------------------------------------------------


def get_client_ip(request: Request) -> str:
    """
    IP del cliente, respetando proxies: primero X-Forwarded-For (primer
    elemento), luego X-Real-IP y por último la dirección del peer.
    """
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip

    return request.client.host if request.client else ""


def is_ip_allowed(client_ip: str, allowed_ips: Iterable[str]) -> bool:
    """Admite IPs exactas y rangos en notación CIDR (ej. 10.0.0.0/8)."""
    try:
        parsed = ipaddress.ip_address(client_ip)
    except ValueError:
        return False

    for allowed in allowed_ips:
        allowed = allowed.strip()
        try:
            if "/" in allowed:
                if parsed in ipaddress.ip_network(allowed, strict=False):
                    return True
            elif parsed == ipaddress.ip_address(allowed):
                return True
        except ValueError:
            logger.debug("Ignoring invalid allowed_ips entry %r", allowed)

    return False


def extract_api_key(request: Request) -> Optional[str]:
    api_key = request.headers.get("x-api-key")
    if api_key:
        return api_key

    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer ") :]
    return None


def _is_https(request: Request) -> bool:
    proto = request.headers.get("x-forwarded-proto", "").split(",")[0].strip()
    return request.url.scheme == "https" or proto.lower() == "https"


# --------------------------------------------------------------------
# Dependencia
# --------------------------------------------------------------------


def verify_webhook_access(
    request: Request, settings: Settings = Depends(get_settings_dep)
) -> None:
    """
    Controles de acceso del webhook, solo los que estén configurados:
    - lista de IPs permitidas (403)
    - API key en X-API-Key o Authorization: Bearer (401)
    - HTTPS obligatorio (400)
    """
    client_ip = get_client_ip(request)

    if settings.allowed_ips and not is_ip_allowed(client_ip, settings.allowed_ips):
        logger.warning("Rejected webhook from unauthorized IP: %s", client_ip)
        raise HTTPException(status_code=403, detail="Forbidden")

    if settings.webhook_api_key:
        api_key = extract_api_key(request) or ""
        if not hmac.compare_digest(api_key.encode(), settings.webhook_api_key.encode()):
            logger.warning("Rejected webhook with invalid API key from IP: %s", client_ip)
            raise HTTPException(status_code=401, detail="Unauthorized")

    if settings.require_https and not _is_https(request):
        logger.warning("Rejected non-HTTPS webhook request from IP: %s", client_ip)
        raise HTTPException(status_code=400, detail="HTTPS required")
