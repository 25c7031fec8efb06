from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

FIRING = "firing"
RESOLVED = "resolved"


class Alert(BaseModel):
    status: str = FIRING
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    startsAt: Optional[datetime] = None
    endsAt: Optional[datetime] = None
    generatorURL: Optional[str] = None

    model_config = ConfigDict(extra="allow")

    @field_validator("labels", "annotations", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        # Alertmanager puede enviar null en lugar de un mapa vacío
        return {} if value is None else value

    @property
    def is_resolved(self) -> bool:
        return self.status == RESOLVED

    @property
    def is_firing(self) -> bool:
        return self.status == FIRING


class WebhookPayload(BaseModel):
    """Notificación de Alertmanager tal como llega al webhook."""

    version: Optional[str] = None
    groupKey: Optional[str] = None
    status: str = FIRING
    receiver: Optional[str] = None
    groupLabels: Dict[str, str] = Field(default_factory=dict)
    commonLabels: Dict[str, str] = Field(default_factory=dict)
    commonAnnotations: Dict[str, str] = Field(default_factory=dict)
    externalURL: Optional[str] = None
    alerts: List[Alert] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")

    @field_validator(
        "groupLabels", "commonLabels", "commonAnnotations", "alerts", mode="before"
    )
    @classmethod
    def _none_as_empty(cls, value, info):
        if value is None:
            return [] if info.field_name == "alerts" else {}
        return value


class AlertEntry(BaseModel):
    id: str
    timestamp: datetime
    alert: Alert


class AlertEntryWithAck(AlertEntry):
    isAcknowledged: bool = False


class UpdateMessage(BaseModel):
    type: str = "update"
    alerts: List[AlertEntryWithAck] = Field(default_factory=list)
    hasUnacknowledged: bool = False
