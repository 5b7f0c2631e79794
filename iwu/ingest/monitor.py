"""
One monitor run for one source: scrape, diff against the stored baseline,
score relevance, record alerts, replace the baseline.

The baseline is only replaced after alerts are written, so a run that dies
half way re-detects the same changes next time instead of losing them.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from ..alerts.sink import AlertSink
from ..store.json_store import JsonStore, PersistError
from .base_fetcher import BaseScraper
from .changes import ChangeKind, detect_changes
from .records import SourceRecord, load_snapshot
from .relevance import classify, rules_from_config
from .scans import ScanHistory

logger = logging.getLogger(__name__)


@dataclass
class MonitorResult:
    """Outcome of a single source run."""
    source_id: str
    status: str  # "completed" | "failed"
    items_found: int = 0
    changes: int = 0
    relevant_changes: int = 0
    alerts_created: int = 0
    baseline_created: bool = False
    carried_forward: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "completed"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SourceMonitor:
    """Runs the scan -> diff -> alert pipeline for one configured source."""

    def __init__(
        self,
        store: JsonStore,
        sink: AlertSink,
        scans: ScanHistory,
        scraper: BaseScraper,
        source_config: Dict[str, Any],
    ):
        self.store = store
        self.sink = sink
        self.scans = scans
        self.scraper = scraper
        self.config = source_config
        self.source_id = source_config["id"]
        self.snapshot_key = source_config.get("snapshot", self.source_id)
        self.keywords: List[str] = list(source_config.get("keywords", []))
        self.rules = rules_from_config(source_config.get("severity_rules"))
        self.detect_removals = bool(source_config.get("detect_removals", False))
        self.alerts_enabled = bool(source_config.get("alerts_enabled", True))

    def run(self) -> MonitorResult:
        """
        Execute one run.

        A fetch failure is recorded on the scan and returned as a failed
        result; the stored baseline is left untouched.

        Raises:
            PersistError: If the snapshot, alerts or scan history cannot be
                written. The scan is marked failed first where possible.
        """
        logger.info(f"Monitoring {self.config['name']}...")
        scan = self.scans.start_scan(self.config["name"])

        try:
            return self._run(scan["id"])
        except PersistError as e:
            logger.error(f"Persistence failure while monitoring {self.source_id}: {e}")
            try:
                self.scans.fail_scan(scan["id"], str(e))
            except PersistError as scan_error:
                logger.error(f"Could not mark scan {scan['id']} failed: {scan_error}")
            raise

    def _run(self, scan_id: str) -> MonitorResult:
        records, error = self.scraper.fetch()
        if error is not None:
            self.scans.fail_scan(scan_id, error)
            return MonitorResult(self.source_id, "failed", error=error)
        fetched = len(records)

        stored = self.store.read(self.snapshot_key)
        baseline_created = stored is None
        if baseline_created:
            logger.info(f"No previous data for {self.source_id}, establishing baseline")
        previous = load_snapshot(stored)

        carried = self._carry_forward(records, previous)
        records = list(records) + carried

        events = detect_changes(records, previous, detect_removals=self.detect_removals)
        relevant = classify(events, self.keywords, self.rules)

        if events:
            removed = sum(1 for e in events if e.kind == ChangeKind.REMOVED)
            logger.info(f"Detected {len(events)} changes ({removed} removals), {len(relevant)} relevant")
        else:
            logger.info("No changes detected")

        alerts = []
        if relevant and self.alerts_enabled:
            alerts = self.sink.record_change_alerts(relevant, self.config)
            logger.info(f"Saved {len(alerts)} alerts")

        self.store.write(self.snapshot_key, [r.to_dict() for r in records])
        self.scans.complete_scan(scan_id, items_found=fetched, alerts_created=len(alerts))

        return MonitorResult(
            source_id=self.source_id,
            status="completed",
            items_found=fetched,
            changes=len(events),
            relevant_changes=len(relevant),
            alerts_created=len(alerts),
            baseline_created=baseline_created,
            carried_forward=len(carried),
        )

    def _carry_forward(self, records: List[SourceRecord], previous: List[SourceRecord]) -> List[SourceRecord]:
        """Baseline records from pages or queries that failed this run, kept unchanged."""
        if not self.scraper.failed_parts:
            return []

        current_ids = {r.id for r in records}
        carried = [r for r in previous if r.id not in current_ids and self.scraper.keeps_baseline(r)]
        logger.warning(
            f"{self.source_id}: {', '.join(self.scraper.failed_parts)} failed, "
            f"keeping {len(carried)} baseline records"
        )
        return carried
