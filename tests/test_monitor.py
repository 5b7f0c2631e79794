"""Tests for the scan -> diff -> alert pipeline and the coordinator."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from iwu.alerts.sink import ALERTS_KEY, AlertSink
from iwu.config.settings import ConfigError, Settings
from iwu.ingest.base_fetcher import BaseScraper, SourceFetchError
from iwu.ingest.coordinator import MonitorCoordinator
from iwu.ingest.monitor import SourceMonitor
from iwu.ingest.scrapers.disability import DisabilityPagesScraper
from iwu.ingest.scans import SCANS_KEY, ScanHistory
from iwu.store.json_store import JsonStore, PersistError


class StaticScraper(BaseScraper):
    """Returns whatever items the test sets, or raises."""

    identity_key = "number"

    def __init__(self, config, items=None, error=None, **kwargs):
        super().__init__(config, **kwargs)
        self.items = items or []
        self.error = error

    def _fetch_impl(self):
        if self.error:
            raise SourceFetchError(self.source_id, self.error)
        return self.items


SOURCE = {
    "id": "legislature",
    "name": "Ontario Legislature",
    "snapshot": "legislature-bills",
    "category": "legislative",
    "urls": ["https://www.ola.org/en/legislative-business/bills"],
    "keywords": ["disability", "WSIB", "benefit"],
}

BILLS = [
    {"number": "Bill 1", "title": "Disability Support Amendment", "status": "First Reading"},
    {"number": "Bill 2", "title": "Highway Act", "status": "First Reading"},
]


@pytest.fixture
def store(tmp_path):
    return JsonStore(tmp_path / "data")


@pytest.fixture
def sink(store):
    return AlertSink(store)


@pytest.fixture
def scans(store):
    return ScanHistory(store)


class SilentScraper(BaseScraper):
    """Raises an exception that carries no message."""

    identity_key = "number"

    def _fetch_impl(self):
        raise ValueError()


DISABILITY_SOURCE = {
    "id": "disability",
    "name": "Disability Benefits",
    "snapshot": "disability-pages",
    "keywords": ["disability", "ODSP"],
    "detect_removals": True,
    "pages": [
        {"source": "ODSP", "url": "https://example.org/odsp", "selector": "h2"},
        {"source": "CPP Disability", "url": "https://example.org/cppd", "selector": "h2"},
    ],
}


def page(text):
    response = MagicMock()
    response.text = f"<h2>{text}</h2>"
    response.raise_for_status = MagicMock()
    return response


def monitor_for(store, sink, scans, items=None, error=None, config=SOURCE):
    return SourceMonitor(store, sink, scans, StaticScraper(config, items=items, error=error), config)


class TestSourceMonitor:
    """One run of one source."""

    def test_first_run_establishes_baseline(self, store, sink, scans):
        result = monitor_for(store, sink, scans, BILLS).run()

        assert result.ok
        assert result.baseline_created is True
        assert result.items_found == 2
        assert result.changes == 2
        assert result.relevant_changes == 1
        assert result.alerts_created == 1
        assert [r["id"] for r in store.read("legislature-bills")] == ["Bill 1", "Bill 2"]

    def test_second_identical_run_is_quiet(self, store, sink, scans):
        monitor_for(store, sink, scans, BILLS).run()
        result = monitor_for(store, sink, scans, BILLS).run()

        assert result.changes == 0
        assert result.alerts_created == 0
        assert result.baseline_created is False
        assert len(store.read_collection(ALERTS_KEY)) == 1

    def test_status_change_alerts(self, store, sink, scans):
        monitor_for(store, sink, scans, BILLS).run()
        changed = [dict(BILLS[0], status="Royal Assent"), BILLS[1]]

        result = monitor_for(store, sink, scans, changed).run()

        assert result.alerts_created == 1
        alert = store.read_collection(ALERTS_KEY)[0]
        assert alert["change_type"] == "STATUS_CHANGE"
        assert alert["severity"] == "warning"
        assert "Royal Assent" in alert["message"]

    def test_fetch_failure_keeps_baseline(self, store, sink, scans):
        monitor_for(store, sink, scans, BILLS).run()
        before = store.read("legislature-bills")

        result = monitor_for(store, sink, scans, error="site down").run()

        assert result.status == "failed"
        assert "site down" in result.error
        assert store.read("legislature-bills") == before
        latest = store.read_collection(SCANS_KEY)[0]
        assert latest["status"] == "failed"
        assert "site down" in latest["error"]

    def test_error_without_message_fails_the_run(self, store, sink, scans):
        config = {**SOURCE, "detect_removals": True}
        monitor_for(store, sink, scans, BILLS, config=config).run()
        before = store.read("legislature-bills")

        result = SourceMonitor(store, sink, scans, SilentScraper(config), config).run()

        assert result.status == "failed"
        assert result.error == "ValueError()"
        assert store.read("legislature-bills") == before
        assert len(store.read_collection(ALERTS_KEY)) == 1
        latest = store.read_collection(SCANS_KEY)[0]
        assert latest["status"] == "failed"
        assert latest["error"] == "ValueError()"

    @patch("iwu.ingest.fetch_web._session.get")
    def test_failed_page_keeps_baseline_record(self, mock_get, store, sink, scans):
        odsp = page("Ontario Disability Support Program rates for 2026")
        cppd = page("CPP disability benefit eligibility changes")
        mock_get.side_effect = [
            odsp, cppd,
            odsp, requests.ConnectionError("down"),
            odsp, cppd,
        ]

        def run():
            scraper = DisabilityPagesScraper(DISABILITY_SOURCE, request_delay=0)
            return SourceMonitor(store, sink, scans, scraper, DISABILITY_SOURCE).run()

        first = run()
        assert first.alerts_created == 2

        partial = run()
        assert partial.ok
        assert partial.items_found == 1
        assert partial.carried_forward == 1
        assert partial.changes == 0
        assert [r["id"] for r in store.read("disability-pages")] == ["ODSP", "CPP Disability"]

        recovered = run()
        assert recovered.changes == 0
        assert recovered.alerts_created == 0
        assert recovered.carried_forward == 0
        assert len(store.read_collection(ALERTS_KEY)) == 2

    def test_scan_completed(self, store, sink, scans):
        monitor_for(store, sink, scans, BILLS).run()

        scan = store.read_collection(SCANS_KEY)[0]
        assert scan["status"] == "completed"
        assert scan["source"] == "Ontario Legislature"
        assert scan["items_found"] == 2
        assert scan["alerts_created"] == 1

    def test_alerts_disabled(self, store, sink, scans):
        config = {**SOURCE, "alerts_enabled": False}
        result = monitor_for(store, sink, scans, BILLS, config=config).run()

        assert result.relevant_changes == 1
        assert result.alerts_created == 0
        assert store.read(ALERTS_KEY) is None

    def test_removals(self, store, sink, scans):
        config = {**SOURCE, "detect_removals": True}
        monitor_for(store, sink, scans, BILLS, config=config).run()

        result = monitor_for(store, sink, scans, BILLS[1:], config=config).run()

        assert result.changes == 1
        assert store.read_collection(ALERTS_KEY)[0]["change_type"] == "REMOVED"

    def test_persist_error_marks_scan_failed_and_propagates(self, store, sink, scans):
        monitor = monitor_for(store, sink, scans, BILLS)
        real_write = store.write

        def failing_write(key, data):
            if key == "legislature-bills":
                raise PersistError(key, "disk full")
            return real_write(key, data)

        with patch.object(store, "write", side_effect=failing_write):
            with pytest.raises(PersistError):
                monitor.run()

        scan = store.read_collection(SCANS_KEY)[0]
        assert scan["status"] == "failed"
        assert "disk full" in scan["error"]


class TestScanHistory:
    """Capped, newest first."""

    def test_cap_and_order(self, store):
        history = ScanHistory(store, max_scans=2)
        for name in ("a", "b", "c"):
            history.start_scan(name)

        assert [s["source"] for s in history.recent_scans()] == ["c", "b"]

    def test_recent_limit(self, scans):
        for name in ("a", "b", "c"):
            scans.start_scan(name, scan_type="manual")

        recent = scans.recent_scans(limit=1)
        assert [s["source"] for s in recent] == ["c"]
        assert recent[0]["type"] == "manual"


ONTARIO_HTML = """
<div class="views-row"><span class="bill-number">Bill 9</span>
<span class="bill-title">WSIB Benefit Reform</span><span class="bill-status">Second Reading</span></div>
"""


class TestCoordinator:
    """Runs every enabled source with per-source isolation."""

    SOURCES = [
        {**SOURCE, "scraper": "legislature"},
        {"id": "lobbyists", "name": "Lobbyist Registry", "scraper": "watchlist",
         "snapshot": "lobbyist-registry", "alerts_enabled": False, "entities": ["Fraser Institute"]},
        {"id": "disabled", "name": "Disabled", "scraper": "watchlist", "enabled": False},
    ]

    @pytest.fixture
    def settings(self, tmp_path):
        return Settings(data_dir=tmp_path / "data", request_delay_seconds=0)

    @patch("iwu.ingest.fetch_web._session.get")
    def test_run_all(self, mock_get, settings):
        response = MagicMock()
        response.text = ONTARIO_HTML
        mock_get.return_value = response

        summary = MonitorCoordinator(settings, self.SOURCES).run()

        assert summary["sources_attempted"] == 2
        assert summary["sources_succeeded"] == 2
        assert summary["alerts_created"] == 1
        assert summary["errors"] == {}
        store = JsonStore(settings.data_dir)
        assert store.read("lobbyist-registry")[0]["id"] == "Fraser Institute"

    @patch("iwu.ingest.fetch_web._session.get")
    def test_failure_isolated(self, mock_get, settings):
        mock_get.side_effect = requests.ConnectionError("unreachable")

        summary = MonitorCoordinator(settings, self.SOURCES).run()

        assert summary["sources_failed"] == 1
        assert summary["sources_succeeded"] == 1
        assert "unreachable" in summary["errors"]["legislature"]

    def test_selected_sources(self, settings):
        summary = MonitorCoordinator(settings, self.SOURCES).run(["lobbyists"])
        assert [r["source_id"] for r in summary["results"]] == ["lobbyists"]

    def test_unknown_source(self, settings):
        with pytest.raises(ConfigError):
            MonitorCoordinator(settings, self.SOURCES).run_source("nope")

    def test_unknown_scraper(self, settings):
        sources = [{"id": "x", "name": "X", "scraper": "carrier-pigeon"}]
        with pytest.raises(ConfigError):
            MonitorCoordinator(settings, sources).run_source("x")
