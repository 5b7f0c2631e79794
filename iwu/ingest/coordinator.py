"""
Runs every configured source monitor in sequence.

Fetch failures are isolated per source and reported in the summary.
Persistence failures are not: the first ``PersistError`` aborts the run.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from ..alerts.sink import AlertSink
from ..config.settings import ConfigError, Settings, load_sources_config
from ..store.json_store import JsonStore
from .monitor import MonitorResult, SourceMonitor
from .scans import ScanHistory
from .scrapers import get_scraper_class

logger = logging.getLogger(__name__)


class MonitorCoordinator:
    """Builds monitors from config/sources.yaml and runs them."""

    def __init__(
        self,
        settings: Settings,
        sources_config: Optional[List[Dict[str, Any]]] = None,
        session=None,
    ):
        self.settings = settings
        self.sources = sources_config if sources_config is not None else load_sources_config(settings.sources_path)
        self.session = session
        self.store = JsonStore(settings.data_dir)
        self.sink = AlertSink(self.store, max_alerts=settings.max_alerts)
        self.scans = ScanHistory(self.store, max_scans=settings.max_scans)

    def get_source(self, source_id: str) -> Dict[str, Any]:
        """
        Raises:
            ConfigError: If no source has that id
        """
        for source in self.sources:
            if source["id"] == source_id:
                return source
        known = ", ".join(s["id"] for s in self.sources)
        raise ConfigError(f"Unknown source '{source_id}'. Configured: {known}")

    def build_monitor(self, source: Dict[str, Any]) -> SourceMonitor:
        try:
            scraper_cls = get_scraper_class(source["scraper"])
        except KeyError as e:
            raise ConfigError(f"Source '{source['id']}': {e.args[0]}") from e

        scraper = scraper_cls(
            source,
            session=self.session,
            max_attempts=self.settings.max_attempts,
            request_delay=self.settings.request_delay_seconds,
            timeout=self.settings.request_timeout,
        )
        return SourceMonitor(self.store, self.sink, self.scans, scraper, source)

    def run_source(self, source_id: str) -> MonitorResult:
        return self.build_monitor(self.get_source(source_id)).run()

    def run(self, source_ids: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        """
        Run the selected (default: all enabled) sources one after another.

        Returns:
            Summary with attempted/succeeded/failed counts, alerts created,
            per-source errors and results
        """
        if source_ids is None:
            selected = [s for s in self.sources if s.get("enabled", True)]
        else:
            selected = [self.get_source(source_id) for source_id in source_ids]

        summary: Dict[str, Any] = {
            "sources_attempted": 0,
            "sources_succeeded": 0,
            "sources_failed": 0,
            "alerts_created": 0,
            "errors": {},
            "results": [],
        }

        for i, source in enumerate(selected):
            if i > 0:
                time.sleep(self.settings.request_delay_seconds)

            summary["sources_attempted"] += 1
            result = self.build_monitor(source).run()
            summary["results"].append(result.to_dict())

            if result.ok:
                summary["sources_succeeded"] += 1
                summary["alerts_created"] += result.alerts_created
            else:
                summary["sources_failed"] += 1
                summary["errors"][source["id"]] = result.error

        logger.info(
            f"Monitoring complete: {summary['sources_succeeded']}/{summary['sources_attempted']} sources, "
            f"{summary['alerts_created']} alerts"
        )
        return summary
