from typing import Iterable

from siren.models.alert_model import Alert


def alerts_match(resolved_alert: Alert, firing_alert: Alert) -> bool:
    """
    Indica si dos alertas corresponden al mismo evento.

    Coinciden solo si ambas tienen exactamente el mismo conjunto de labels
    con los mismos valores. Un conjunto de labels vacío nunca coincide.
    La comparación es simétrica.

    Args:
        resolved_alert: Alerta entrante (normalmente con status "resolved")
        firing_alert: Alerta almacenada (normalmente con status "firing")

    Returns:
        bool: True si los labels son idénticos
    """
    if not resolved_alert.labels or not firing_alert.labels:
        return False

    if len(resolved_alert.labels) != len(firing_alert.labels):
        return False

    return resolved_alert.labels == firing_alert.labels


def has_resolved_alerts(alerts: Iterable[Alert]) -> bool:
    """True si alguna alerta de la notificación está resuelta."""
    return any(alert.is_resolved for alert in alerts)
