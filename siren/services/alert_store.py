import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, List, Set

from siren.core.rwlock import ReadWriteLock
from siren.models.alert_model import (
    Alert,
    AlertEntry,
    AlertEntryWithAck,
    UpdateMessage,
    WebhookPayload,
)
from siren.services.matcher import alerts_match, has_resolved_alerts

logger = logging.getLogger(__name__)

Listener = Callable[[], None]

# Prioridad de visualización: menor número se muestra primero
PRIORITY_FIRING = 0
PRIORITY_ACKNOWLEDGED = 1
PRIORITY_RESOLVED = 2


def get_alert_priority(alert: Alert, acknowledged: bool) -> int:
    if alert.is_firing and not acknowledged:
        return PRIORITY_FIRING
    if alert.is_firing:
        return PRIORITY_ACKNOWLEDGED
    return PRIORITY_RESOLVED


class AlertStore:
    """
    Estado vivo de las alertas recibidas.

    Mantiene las entradas (la más reciente primero) y el conjunto de ids
    reconocidos. Todo acceso pasa por un lock de lectores/escritor; los
    listeners registrados se notifican después de liberar el lock.

    Args:
        max_size: número máximo de entradas retenidas
        keep_resolved: si es True, una alerta resuelta que cerró una alerta
            activa se guarda como entrada nueva (historial visible hasta el
            próximo clear); por defecto se descarta
    """

    def __init__(self, max_size: int = 100, keep_resolved: bool = False):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.keep_resolved = keep_resolved
        self._lock = ReadWriteLock()
        self._entries: List[AlertEntry] = []
        self._acknowledged: Set[str] = set()
        self._listeners: List[Listener] = []
        self._listeners_lock = threading.Lock()
        self._last_base_id = 0

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        with self._listeners_lock:
            self._listeners.append(listener)

    def _notify(self) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("State listener %r failed", listener)

    # ------------------------------------------------------------------
    # Mutaciones
    # ------------------------------------------------------------------

    def ingest(self, payload: WebhookPayload) -> List[AlertEntry]:
        """
        Incorpora una notificación de Alertmanager.

        Las alertas resueltas se concilian contra todas las entradas activas
        almacenadas; una resuelta sin alerta activa equivalente se descarta.

        Args:
            payload: notificación completa

        Returns:
            List[AlertEntry]: copias de las entradas creadas
        """
        accepted: List[AlertEntry] = []

        with self._lock.write():
            timestamp = datetime.now(timezone.utc)
            base_id = self._next_base_id()

            matched_indexes: Set[int] = set()
            if payload.status == "resolved" or has_resolved_alerts(payload.alerts):
                matched_indexes = self._remove_matching_firing(payload.alerts)

            new_entries: List[AlertEntry] = []
            for index, alert in enumerate(payload.alerts):
                if alert.is_resolved:
                    if index not in matched_indexes:
                        logger.debug(
                            "Ignoring resolved alert that didn't match any firing alert: %s",
                            alert.labels,
                        )
                        continue
                    if not self.keep_resolved:
                        continue

                new_entries.append(
                    AlertEntry(
                        id=f"{base_id}-{index}",
                        timestamp=timestamp,
                        alert=alert.model_copy(deep=True),
                    )
                )

            # La más reciente primero dentro del lote también
            new_entries.reverse()
            self._entries = new_entries + self._entries

            if len(self._entries) > self.max_size:
                evicted = self._entries[self.max_size :]
                self._entries = self._entries[: self.max_size]
                for entry in evicted:
                    self._acknowledged.discard(entry.id)
                logger.debug("Evicted %d alerts over max_size=%d", len(evicted), self.max_size)

            accepted = [entry.model_copy(deep=True) for entry in new_entries]

        self._notify()
        return accepted

    def _next_base_id(self) -> int:
        # Debe llamarse con el lock de escritura tomado
        base_id = time.time_ns()
        if base_id <= self._last_base_id:
            base_id = self._last_base_id + 1
        self._last_base_id = base_id
        return base_id

    def _remove_matching_firing(self, alerts: List[Alert]) -> Set[int]:
        """
        Elimina las entradas activas que coinciden con alguna alerta resuelta.

        Cada alerta resuelta cierra como máximo una entrada (la primera en
        orden, es decir la más reciente). Debe llamarse con el lock de
        escritura tomado.

        Returns:
            Set[int]: índices (dentro de ``alerts``) de las resueltas que
            coincidieron
        """
        resolved = [
            (index, alert) for index, alert in enumerate(alerts) if alert.is_resolved
        ]
        if not resolved:
            return set()

        matched: Set[int] = set()
        kept: List[AlertEntry] = []

        for entry in self._entries:
            match_index = None
            if entry.alert.is_firing:
                for index, resolved_alert in resolved:
                    if index in matched:
                        continue
                    if alerts_match(resolved_alert, entry.alert):
                        match_index = index
                        break

            if match_index is None:
                kept.append(entry)
                continue

            matched.add(match_index)
            self._acknowledged.discard(entry.id)
            logger.debug(
                "Removing firing alert %s - matches resolved alert with labels: %s",
                entry.id,
                entry.alert.labels,
            )

        self._entries = kept
        return matched

    def acknowledge(self, alert_id: str) -> None:
        """
        Marca una alerta como reconocida. Es idempotente; un id que ya no
        existe no tiene efecto y no queda registrado.
        """
        with self._lock.write():
            known = any(entry.id == alert_id for entry in self._entries)
            if known:
                self._acknowledged.add(alert_id)

        if known:
            logger.info("Alert %s acknowledged", alert_id)
        else:
            logger.debug("Ignoring acknowledge for unknown alert id %s", alert_id)

        self._notify()

    def clear_acknowledged_and_resolved(self) -> int:
        """
        Elimina las alertas resueltas y las activas ya reconocidas.

        Returns:
            int: cantidad de entradas eliminadas
        """
        with self._lock.write():
            kept: List[AlertEntry] = []
            cleared = 0
            for entry in self._entries:
                if entry.alert.is_firing and entry.id not in self._acknowledged:
                    kept.append(entry)
                else:
                    self._acknowledged.discard(entry.id)
                    cleared += 1
            self._entries = kept

        logger.debug("Cleared %d acknowledged/resolved alerts", cleared)
        self._notify()
        return cleared

    # ------------------------------------------------------------------
    # Lecturas
    # ------------------------------------------------------------------

    def snapshot(self) -> List[AlertEntryWithAck]:
        """
        Copia ordenada para mostrar: activas sin reconocer, reconocidas y
        resueltas; dentro de cada grupo la más reciente primero. Entradas
        con igual prioridad y timestamp no tienen orden garantizado.
        """
        with self._lock.read():
            return self._sorted_snapshot()

    def _sorted_snapshot(self) -> List[AlertEntryWithAck]:
        result = [
            AlertEntryWithAck(
                id=entry.id,
                timestamp=entry.timestamp,
                alert=entry.alert.model_copy(deep=True),
                isAcknowledged=entry.id in self._acknowledged,
            )
            for entry in self._entries
        ]
        result.sort(key=lambda e: -e.timestamp.timestamp())
        result.sort(key=lambda e: get_alert_priority(e.alert, e.isAcknowledged))
        return result

    def has_unacknowledged_firing(self) -> bool:
        with self._lock.read():
            return self._has_unacknowledged_firing()

    def _has_unacknowledged_firing(self) -> bool:
        return any(
            entry.alert.is_firing and entry.id not in self._acknowledged
            for entry in self._entries
        )

    def is_acknowledged(self, alert_id: str) -> bool:
        with self._lock.read():
            return alert_id in self._acknowledged

    def update_message(self) -> UpdateMessage:
        """Estado completo para los viewers, leído bajo un único lock."""
        with self._lock.read():
            return UpdateMessage(
                type="update",
                alerts=self._sorted_snapshot(),
                hasUnacknowledged=self._has_unacknowledged_firing(),
            )
