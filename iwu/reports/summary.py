"""
Daily summary of alerts, scans, cases and targets.

The summary is written to daily-summary.json and is the input for the
Telegram and Discord notifiers.
"""

import logging
from collections import Counter
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from ..alerts.sink import ALERTS_KEY
from ..cases.targets import TARGETS_KEY
from ..cases.workflow import CASES_KEY, CaseStatus
from ..ingest.scans import SCANS_KEY
from ..store.json_store import JsonStore, utc_now_iso

logger = logging.getLogger(__name__)

SUMMARY_KEY = "daily-summary"

# Per-source snapshot files whose sizes are reported
SNAPSHOT_KEYS = (
    "legislature-bills",
    "federal-bills",
    "wsib-policies",
    "disability-benefits",
    "corporate-filings",
    "lobbyist-registry",
    "government-data",
    "legislation",
)

SEVERITY_BUCKETS = ("critical", "high", "medium", "low")


def _on_day(timestamp: Optional[str], day: date) -> bool:
    return bool(timestamp) and timestamp.startswith(day.isoformat())


def pick_top_alert(alerts: Sequence[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """First critical alert, else first high, else the first alert."""
    for severity in ("critical", "high"):
        for alert in alerts:
            if alert.get("severity") == severity:
                return alert
    return alerts[0] if alerts else None


def generate_daily_summary(
    store: JsonStore,
    today: Optional[date] = None,
    source_labels: Optional[List[str]] = None,
    snapshot_keys: Sequence[str] = SNAPSHOT_KEYS,
) -> Dict[str, Any]:
    """
    Build and persist the summary for ``today`` (default: current UTC date).

    Args:
        store: Data store
        today: Day to summarise
        source_labels: Names reported as scanned when no scan ran today
        snapshot_keys: Snapshot files to count records in

    Returns:
        The summary dict, as written to daily-summary.json

    Raises:
        PersistError: If the summary cannot be written
    """
    today = today or datetime.now(timezone.utc).date()

    alerts = store.read_collection(ALERTS_KEY)
    scans = store.read_collection(SCANS_KEY)
    cases = store.read_collection(CASES_KEY)
    targets = store.read_collection(TARGETS_KEY)

    todays_alerts = [a for a in alerts if _on_day(a.get("created_at"), today)]
    todays_scans = [s for s in scans if _on_day(s.get("started_at"), today)]

    severity_counts = Counter(a.get("severity") for a in todays_alerts)
    case_counts = Counter(c.get("status") for c in cases)
    top_alert = pick_top_alert(todays_alerts)

    sources_scanned = []
    for scan in todays_scans:
        if scan.get("source") and scan["source"] not in sources_scanned:
            sources_scanned.append(scan["source"])
    if not sources_scanned:
        sources_scanned = list(source_labels or [])

    snapshots = {}
    for key in snapshot_keys:
        data = store.read(key)
        if isinstance(data, list):
            snapshots[key] = len(data)

    summary = {
        "date": today.isoformat(),
        "generated_at": utc_now_iso(),
        "alerts": {
            "new_today": len(todays_alerts),
            "total": len(alerts),
            "by_severity": {s: severity_counts.get(s, 0) for s in SEVERITY_BUCKETS},
            "by_category": dict(Counter(a.get("category") or "uncategorized" for a in todays_alerts)),
            "unacknowledged": sum(1 for a in alerts if not a.get("acknowledged")),
        },
        "scans": {
            "today": len(todays_scans),
            "total": len(scans),
            "failed_today": sum(1 for s in todays_scans if s.get("status") == "failed"),
            "last_scan": scans[0] if scans else None,
        },
        "cases": {
            "draft": case_counts.get(CaseStatus.DRAFT.value, 0),
            "underReview": case_counts.get(CaseStatus.UNDER_REVIEW.value, 0),
            "approved": case_counts.get(CaseStatus.APPROVED.value, 0),
            "published": case_counts.get(CaseStatus.PUBLISHED.value, 0),
        },
        "targets": {
            "total": len(targets),
            "critical": sum(1 for t in targets if t.get("threat_level") == "critical"),
            "active": sum(1 for t in targets if t.get("status") == "active_monitoring"),
        },
        "top_alert": {
            "id": top_alert.get("id"),
            "title": top_alert.get("title"),
            "severity": top_alert.get("severity"),
            "category": top_alert.get("category"),
            "source_url": top_alert.get("source_url"),
        } if top_alert else None,
        "sources_scanned": sources_scanned,
        "snapshots": snapshots,
    }

    store.write(SUMMARY_KEY, summary)
    logger.info(
        f"Daily summary {summary['date']}: {summary['alerts']['new_today']} new alerts "
        f"({summary['alerts']['by_severity']['critical']} critical), {summary['scans']['today']} scans"
    )
    return summary


def load_daily_summary(store: JsonStore) -> Optional[Dict[str, Any]]:
    data = store.read(SUMMARY_KEY)
    return data if isinstance(data, dict) else None
