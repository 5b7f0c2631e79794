"""Alert persistence.

Alerts live in alerts.json, most recent first, capped at ``max_alerts``.
The oldest entries are dropped silently once the cap is reached. An alert
is never edited except to acknowledge it or record a delivery channel.
"""

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..config.settings import DEFAULT_MAX_ALERTS
from ..ingest.changes import ChangeEvent, ChangeKind
from ..store.json_store import JsonStore, generate_id, utc_now_iso
from ..store.validation import ALERT_SCHEMA, validate_payload

logger = logging.getLogger(__name__)

ALERTS_KEY = "alerts"


class AlertSeverity(Enum):
    """Alert severity levels."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    WARNING = "warning"
    INFO = "info"


SEVERITY_EMOJI = {
    "critical": "🔴",
    "high": "🟠",
    "warning": "🟡",
    "medium": "🟡",
    "low": "🔵",
    "info": "🔵",
}

CHANGE_LABELS = {
    ChangeKind.NEW: "New",
    ChangeKind.STATUS_CHANGE: "Status change",
    ChangeKind.TITLE_CHANGE: "Title change",
    ChangeKind.REMOVED: "Removed",
}


@dataclass
class Alert:
    """Stored alert record."""
    title: str
    message: str = ""
    severity: str = AlertSeverity.MEDIUM.value
    category: Optional[str] = None
    scope: str = "provincial"
    source: str = ""
    source_url: str = ""
    verified: bool = False
    case_id: Optional[str] = None
    origin: str = "manual"
    change_type: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    delivered_via: List[str] = field(default_factory=list)
    acknowledged: bool = False
    acknowledged_at: Optional[str] = None
    id: str = field(default_factory=generate_id)
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AlertSink:
    """Reads and writes the capped alert list."""

    def __init__(self, store: JsonStore, max_alerts: int = DEFAULT_MAX_ALERTS):
        if max_alerts < 1:
            raise ValueError("max_alerts must be at least 1")
        self.store = store
        self.max_alerts = max_alerts

    def record_alert(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate and prepend a new alert, dropping the oldest beyond the cap.

        Raises:
            ValidationError: If the title is missing or the severity is unknown
            PersistError: If alerts.json cannot be written
        """
        validate_payload(fields, ALERT_SCHEMA)
        known = set(Alert.__dataclass_fields__) - {"id", "created_at", "acknowledged", "acknowledged_at", "delivered_via"}
        alert = Alert(**{k: v for k, v in fields.items() if k in known})
        return self._prepend([alert.to_dict()])[0]

    def record_change_alerts(self, events: Sequence[ChangeEvent], source_config: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Turn classified change events into alerts with a single write.

        Args:
            events: Output of ``classify``
            source_config: Source definition (name, category, scope, urls)

        Returns:
            Stored alerts, in event order
        """
        if not events:
            return []

        source_name = source_config.get("alert_source") or source_config.get("name", "")
        fallback_url = (source_config.get("urls") or [""])[0]

        alerts = []
        for event in events:
            record = event.current
            label = CHANGE_LABELS[event.kind]
            alert = Alert(
                title=f"{label}: {record.title}" if record.title == record.id else f"{label}: {record.id} - {record.title}",
                message=event.describe(),
                severity=event.severity,
                category=source_config.get("category", "monitoring"),
                scope=source_config.get("scope", "provincial"),
                source=source_name,
                source_url=record.source_url or fallback_url,
                verified=True,
                origin="scan",
                change_type=event.kind.value,
                keywords=list(event.matched_keywords),
            )
            validate_payload(alert.to_dict(), ALERT_SCHEMA)
            alerts.append(alert.to_dict())

        # newest first: the first event ends up on top
        return self._prepend(alerts)

    def _prepend(self, new_alerts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        existing = self.store.read_collection(ALERTS_KEY)
        combined = list(new_alerts) + existing
        dropped = len(combined) - self.max_alerts
        if dropped > 0:
            logger.debug(f"Alert cap {self.max_alerts} reached, dropping {dropped} oldest alerts")
        self.store.write(ALERTS_KEY, combined[:self.max_alerts])
        # alerts cut by the cap in the same batch were never stored
        return new_alerts[:self.max_alerts]

    def acknowledge_alert(self, alert_id: str) -> Optional[Dict[str, Any]]:
        """
        Mark an alert acknowledged. Acknowledging twice changes nothing.

        Returns:
            The alert, or None if no alert has that id
        """
        alert = self.get_alert(alert_id)
        if alert is None:
            return None
        if alert.get("acknowledged"):
            return alert
        return self.store.update_record(ALERTS_KEY, alert_id, {
            "acknowledged": True,
            "acknowledged_at": utc_now_iso(),
        })

    def mark_delivered(self, alert_id: str, channel: str) -> Optional[Dict[str, Any]]:
        """Record that an alert went out on ``channel`` (telegram, discord, ...)."""
        alert = self.get_alert(alert_id)
        if alert is None:
            return None
        delivered = list(alert.get("delivered_via") or [])
        if channel in delivered:
            return alert
        delivered.append(channel)
        return self.store.update_record(ALERTS_KEY, alert_id, {"delivered_via": delivered})

    def get_alert(self, alert_id: str) -> Optional[Dict[str, Any]]:
        return self.store.find_record(ALERTS_KEY, alert_id)

    def get_alerts(
        self,
        severity: Optional[str] = None,
        category: Optional[str] = None,
        scope: Optional[str] = None,
        acknowledged: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        """Filtered alerts, newest first."""
        alerts = self.store.filter_records(
            ALERTS_KEY,
            severity=severity,
            category=category,
            scope=scope,
            acknowledged=acknowledged,
        )
        return sorted(alerts, key=lambda a: a.get("created_at") or "", reverse=True)
