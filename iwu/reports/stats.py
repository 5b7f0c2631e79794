"""System-wide counts over the JSON store."""

from collections import Counter
from typing import Any, Dict

from ..alerts.sink import ALERTS_KEY
from ..cases.evidence import EVIDENCE_KEY
from ..cases.targets import TARGETS_KEY
from ..cases.workflow import CASES_KEY
from ..ingest.scans import SCANS_KEY
from ..store.json_store import JsonStore, utc_now_iso


def get_system_stats(store: JsonStore) -> Dict[str, Any]:
    """Counts for cases, alerts, targets, evidence and scans."""
    cases = store.read_collection(CASES_KEY)
    alerts = store.read_collection(ALERTS_KEY)
    targets = store.read_collection(TARGETS_KEY)
    evidence = store.read_collection(EVIDENCE_KEY)
    scans = store.read_collection(SCANS_KEY)

    return {
        "cases": {
            "total": len(cases),
            "by_status": dict(Counter(c.get("status") for c in cases)),
            "by_category": dict(Counter(c.get("category") for c in cases)),
            "by_severity": dict(Counter(c.get("severity") for c in cases)),
            "by_scope": dict(Counter(c.get("scope") for c in cases)),
        },
        "alerts": {
            "total": len(alerts),
            "unacknowledged": sum(1 for a in alerts if not a.get("acknowledged")),
            "critical": sum(1 for a in alerts if a.get("severity") == "critical"),
        },
        "targets": {
            "total": len(targets),
            "active": sum(1 for t in targets if t.get("status") == "active_monitoring"),
            "critical": sum(1 for t in targets if t.get("threat_level") == "critical"),
        },
        "evidence": {
            "total": len(evidence),
        },
        "scans": {
            "total": len(scans),
            "last_scan": scans[0] if scans else None,
        },
        "last_updated": utc_now_iso(),
    }
