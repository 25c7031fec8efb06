import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from siren.config import Settings
from siren.main import create_app
from siren.models.alert_model import WebhookPayload
from siren.services.alert_store import AlertStore


@pytest.fixture
def fixtures_dir():
    """Retorna el path al directorio de fixtures."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def load_fixture(fixtures_dir):
    """Factory fixture para cargar archivos JSON."""

    def _load(filename: str):
        filepath = fixtures_dir / filename
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f)

    return _load


@pytest.fixture
def firing_webhook(load_fixture):
    """Notificación con dos alertas activas."""
    return load_fixture("alertmanager_firing.json")


@pytest.fixture
def resolved_webhook(load_fixture):
    """Notificación que resuelve una de las alertas de firing_webhook."""
    return load_fixture("alertmanager_resolved.json")


@pytest.fixture
def minimal_webhook(load_fixture):
    """Notificación con datos mínimos."""
    return load_fixture("alertmanager_minimal.json")


@pytest.fixture
def make_payload():
    """Construye un WebhookPayload a partir de pares (status, labels)."""

    def _make(*alerts, status=None):
        items = [{"status": s, "labels": labels} for s, labels in alerts]
        if status is None:
            status = "resolved" if items and all(a["status"] == "resolved" for a in items) else "firing"
        return WebhookPayload.model_validate({"status": status, "alerts": items})

    return _make


@pytest.fixture
def store():
    return AlertStore(max_size=100)


@pytest.fixture
def settings(tmp_path):
    """Configuración de test: sin autenticación y con un sonido temporal."""
    sound_file = tmp_path / "alert.wav"
    sound_file.write_bytes(b"RIFF0000WAVE")
    return Settings(sound_effect_file_path=str(sound_file), log_level="DEBUG")


@pytest.fixture
def no_player(monkeypatch):
    """Simula un host sin reproductor de audio."""
    monkeypatch.setattr("siren.services.sound.find_player", lambda: None)


@pytest.fixture
def app(settings, no_player):
    """Aplicación nueva por test, con sus propias dependencias."""
    return create_app(settings)


@pytest.fixture
def client(app):
    """Cliente con el lifespan activo (hub y alarma arrancados)."""
    with TestClient(app) as client:
        yield client
