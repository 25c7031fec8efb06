from starlette.requests import HTTPConnection

from siren.config import Settings
from siren.services.alert_store import AlertStore
from siren.services.hub import NotificationHub


def get_settings_dep(connection: HTTPConnection) -> Settings:
    return connection.app.state.settings


def get_alert_store(connection: HTTPConnection) -> AlertStore:
    return connection.app.state.store


def get_hub(connection: HTTPConnection) -> NotificationHub:
    return connection.app.state.hub
