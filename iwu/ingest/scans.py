"""Scan history: one entry per monitor run, most recent first."""

import logging
from typing import Any, Dict, List, Optional

from ..config.settings import DEFAULT_MAX_SCANS
from ..store.json_store import JsonStore, utc_now_iso

logger = logging.getLogger(__name__)

SCANS_KEY = "scan-history"


class ScanHistory:
    """Capped run log backed by ``scan-history.json``."""

    def __init__(self, store: JsonStore, max_scans: int = DEFAULT_MAX_SCANS):
        self.store = store
        self.max_scans = max_scans

    def start_scan(self, source: str, scan_type: str = "scheduled") -> Dict[str, Any]:
        """Record a scan in state ``running``."""
        return self.store.create_record(SCANS_KEY, {
            "source": source,
            "type": scan_type,
            "started_at": utc_now_iso(),
            "completed_at": None,
            "status": "running",
            "items_found": 0,
            "alerts_created": 0,
            "error": None,
        }, prepend=True, cap=self.max_scans)

    def complete_scan(self, scan_id: str, items_found: int, alerts_created: int) -> Optional[Dict[str, Any]]:
        return self.store.update_record(SCANS_KEY, scan_id, {
            "status": "completed",
            "completed_at": utc_now_iso(),
            "items_found": items_found,
            "alerts_created": alerts_created,
        })

    def fail_scan(self, scan_id: str, error: str) -> Optional[Dict[str, Any]]:
        return self.store.update_record(SCANS_KEY, scan_id, {
            "status": "failed",
            "completed_at": utc_now_iso(),
            "error": error,
        })

    def recent_scans(self, limit: int = 20) -> List[Dict[str, Any]]:
        return self.store.read_collection(SCANS_KEY)[:limit]
