import os
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes")


def _as_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseModel):
    max_alerts: int = 100
    keep_resolved_alerts: bool = False
    sound_effect_file_path: str = "sounds/alert.wav"
    alarm_pause_seconds: float = 2.0
    webhook_api_key: str = ""
    allowed_ips: List[str] = Field(default_factory=list)
    require_https: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8080

    model_config = ConfigDict(frozen=True)

    @property
    def webhook_auth_enabled(self) -> bool:
        return bool(self.webhook_api_key or self.allowed_ips or self.require_https)


def get_settings() -> Settings:
    """
    Lee la configuración desde el entorno (y el .env si existe).

    Un valor numérico inválido lanza ValueError; solo el arranque debería
    llamar a esta función.
    """
    max_alerts = int(os.getenv("MAX_ALERTS", "100"))
    if max_alerts < 1:
        raise ValueError("MAX_ALERTS must be >= 1")

    return Settings(
        max_alerts=max_alerts,
        keep_resolved_alerts=_as_bool(os.getenv("KEEP_RESOLVED_ALERTS", "false")),
        sound_effect_file_path=os.getenv("SOUND_EFFECT_FILE_PATH", "sounds/alert.wav"),
        alarm_pause_seconds=float(os.getenv("ALARM_PAUSE_SECONDS", "2.0")),
        webhook_api_key=os.getenv("WEBHOOK_API_KEY", ""),
        allowed_ips=_as_list(os.getenv("ALLOWED_IPS", "")),
        require_https=_as_bool(os.getenv("REQUIRE_HTTPS", "false")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
    )
