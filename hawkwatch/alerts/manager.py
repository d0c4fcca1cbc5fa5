"""
Alert store with bounded capacity.

This module provides the AlertManager that creates, resolves and lists alerts
raised by health probes, threshold checks, the API middleware and process
fault hooks. Capacity is enforced by evicting the single oldest alert by
creation time, whatever its severity or resolution state.
"""

import itertools
import secrets
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..config import AlertPolicy
from ..utils.logging import get_logger


class AlertType(str, Enum):
    """Kinds of condition an alert can describe."""
    PERFORMANCE = "performance"
    HEALTH = "health"
    ERROR = "error"
    WARNING = "warning"


class AlertSeverity(str, Enum):
    """Alert severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertEvent(str, Enum):
    """Events delivered to alert listeners."""
    CREATED = "created"
    RESOLVED = "resolved"


@dataclass
class Alert:
    """A single alert record."""
    id: str
    type: AlertType
    severity: AlertSeverity
    service: str
    message: str
    timestamp: datetime
    details: Dict[str, Any] = field(default_factory=dict)
    resolved: bool = False
    resolved_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'id': self.id,
            'type': self.type.value,
            'severity': self.severity.value,
            'service': self.service,
            'message': self.message,
            'details': self.details,
            'timestamp': self.timestamp.isoformat(),
            'resolved': self.resolved,
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Alert':
        """Create from dictionary."""
        return cls(
            id=data['id'],
            type=AlertType(data['type']),
            severity=AlertSeverity(data['severity']),
            service=data['service'],
            message=data['message'],
            details=data.get('details', {}),
            timestamp=datetime.fromisoformat(data['timestamp']),
            resolved=data.get('resolved', False),
            resolved_at=datetime.fromisoformat(data['resolved_at']) if data.get('resolved_at') else None
        )


AlertListener = Callable[[AlertEvent, Alert], None]


class AlertManager:
    """
    Thread-safe alert store.

    The store never deduplicates or throttles on its own. ``in_cooldown`` and
    ``critical_escalation_due`` expose the configured policy knobs for callers
    that want to apply them.
    """

    def __init__(
        self,
        policy: Optional[AlertPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize alert manager.

        Args:
            policy: Capacity and policy settings
            clock: Source of alert timestamps (defaults to datetime.now)
        """
        self.policy = policy or AlertPolicy()
        self.logger = get_logger(__name__)

        self._clock = clock or datetime.now
        self._alerts: Dict[str, Alert] = {}
        self._listeners: List[AlertListener] = []
        self._sequence = itertools.count(1)
        self._lock = threading.RLock()

    def create_alert(
        self,
        alert_type: AlertType,
        severity: AlertSeverity,
        service: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Store a new unresolved alert and return its id.

        If the store then exceeds ``max_active_alerts``, the alert with the
        oldest timestamp is evicted.
        """
        with self._lock:
            alert = Alert(
                id=self._generate_alert_id(),
                type=AlertType(alert_type),
                severity=AlertSeverity(severity),
                service=service,
                message=message,
                details=dict(details or {}),
                timestamp=self._clock()
            )
            self._alerts[alert.id] = alert

            self.logger.warning(
                f"Alert created: {message}",
                alert_id=alert.id,
                alert_type=alert.type.value,
                severity=alert.severity.value,
                service=service
            )

            if len(self._alerts) > self.policy.max_active_alerts:
                self._evict_oldest()

            snapshot = replace(alert)

        self._notify_listeners(AlertEvent.CREATED, snapshot)
        return snapshot.id

    def resolve_alert(self, alert_id: str) -> bool:
        """
        Mark an alert resolved.

        Returns:
            True on the first resolution of a known alert; False for unknown
            or already resolved ids, which leave the store untouched
        """
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None or alert.resolved:
                return False

            alert.resolved = True
            alert.resolved_at = self._clock()
            snapshot = replace(alert)

        self.logger.info(f"Alert resolved: {alert_id}", service=snapshot.service)
        self._notify_listeners(AlertEvent.RESOLVED, snapshot)
        return True

    def get_active_alerts(self) -> List[Alert]:
        """Snapshot of unresolved alerts."""
        with self._lock:
            return [replace(alert) for alert in self._alerts.values() if not alert.resolved]

    def get_all_alerts(self) -> List[Alert]:
        """Snapshot of every stored alert, resolved or not, oldest first."""
        with self._lock:
            return [replace(alert) for alert in self._alerts.values()]

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        with self._lock:
            alert = self._alerts.get(alert_id)
            return replace(alert) if alert else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._alerts)

    # Policy helpers

    def in_cooldown(self, service: str, alert_type: AlertType) -> bool:
        """True if a matching unresolved alert was raised within the cooldown window."""
        cutoff = self._clock() - timedelta(milliseconds=self.policy.alert_cooldown)
        with self._lock:
            return any(
                alert.service == service
                and alert.type == alert_type
                and not alert.resolved
                and alert.timestamp >= cutoff
                for alert in self._alerts.values()
            )

    def critical_escalation_due(self) -> bool:
        """True once active critical alerts reach the configured threshold."""
        with self._lock:
            critical = sum(
                1 for alert in self._alerts.values()
                if not alert.resolved and alert.severity == AlertSeverity.CRITICAL
            )
        return critical >= self.policy.critical_alert_threshold

    def get_statistics(self) -> Dict[str, Any]:
        """Counts by state and severity."""
        with self._lock:
            active = [alert for alert in self._alerts.values() if not alert.resolved]
            by_severity = {severity.value: 0 for severity in AlertSeverity}
            for alert in active:
                by_severity[alert.severity.value] += 1

            return {
                'stored': len(self._alerts),
                'active': len(active),
                'resolved': len(self._alerts) - len(active),
                'active_by_severity': by_severity,
                'capacity': self.policy.max_active_alerts
            }

    # Listeners

    def add_listener(self, callback: AlertListener) -> None:
        """Add a callback notified with ``(event, alert)`` on creation and resolution."""
        with self._lock:
            if callback not in self._listeners:
                self._listeners.append(callback)

    def remove_listener(self, callback: AlertListener) -> None:
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    def _notify_listeners(self, event: AlertEvent, alert: Alert) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event, alert)
            except Exception as e:
                self.logger.error(f"Error in alert listener {getattr(listener, '__name__', listener)}: {e}")

    def _evict_oldest(self) -> None:
        # min() keeps the first of equal timestamps, i.e. the earliest inserted
        oldest = min(self._alerts.values(), key=lambda alert: alert.timestamp)
        del self._alerts[oldest.id]
        self.logger.info(
            f"Alert store over capacity, evicted oldest alert {oldest.id}",
            evicted_severity=oldest.severity.value,
            evicted_resolved=oldest.resolved
        )

    def _generate_alert_id(self) -> str:
        """Time plus a per-manager sequence plus randomness."""
        return f"alert_{int(time.time() * 1000)}_{next(self._sequence)}{secrets.token_hex(3)}"
