"""Tests for the daily summary and system stats."""

from datetime import date

import pytest

from iwu.alerts.sink import ALERTS_KEY
from iwu.cases.targets import TARGETS_KEY
from iwu.cases.workflow import CASES_KEY
from iwu.ingest.scans import SCANS_KEY
from iwu.reports.stats import get_system_stats
from iwu.reports.summary import (
    SUMMARY_KEY,
    generate_daily_summary,
    load_daily_summary,
    pick_top_alert,
)
from iwu.store.json_store import JsonStore

TODAY = date(2026, 3, 4)


@pytest.fixture
def store(tmp_path):
    store = JsonStore(tmp_path / "data")
    store.write(ALERTS_KEY, [
        {"id": "a1", "title": "Deeming", "severity": "high", "category": "wsib",
         "created_at": "2026-03-04T10:00:00+00:00", "acknowledged": False},
        {"id": "a2", "title": "ODSP rates", "severity": "critical", "category": None,
         "created_at": "2026-03-04T09:00:00+00:00", "acknowledged": True},
        {"id": "a3", "title": "Old", "severity": "critical", "category": "wsib",
         "created_at": "2026-03-01T09:00:00+00:00", "acknowledged": False},
    ])
    store.write(SCANS_KEY, [
        {"id": "s1", "source": "WSIB", "status": "failed", "started_at": "2026-03-04T08:00:00+00:00"},
        {"id": "s2", "source": "WSIB", "status": "completed", "started_at": "2026-03-04T07:00:00+00:00"},
        {"id": "s3", "source": "Ontario Legislature", "status": "completed", "started_at": "2026-03-03T07:00:00+00:00"},
    ])
    store.write(CASES_KEY, [
        {"id": "c1", "status": "DRAFT", "category": "wsib", "severity": "high", "scope": "provincial"},
        {"id": "c2", "status": "PUBLISHED", "category": "wsib", "severity": "critical", "scope": "provincial"},
        {"id": "c3", "status": "PUBLISHED", "category": "odsp", "severity": "high", "scope": "federal"},
    ])
    store.write(TARGETS_KEY, [
        {"id": "t1", "name": "WSIB", "threat_level": "critical", "status": "active_monitoring"},
    ])
    store.write("wsib-policies", [{"id": "p1"}, {"id": "p2"}])
    return store


class TestDailySummary:
    """Counts for one day, written to daily-summary.json."""

    def test_alert_counts(self, store):
        summary = generate_daily_summary(store, today=TODAY)

        assert summary["date"] == "2026-03-04"
        assert summary["alerts"]["new_today"] == 2
        assert summary["alerts"]["total"] == 3
        assert summary["alerts"]["by_severity"] == {"critical": 1, "high": 1, "medium": 0, "low": 0}
        assert summary["alerts"]["by_category"] == {"wsib": 1, "uncategorized": 1}
        assert summary["alerts"]["unacknowledged"] == 2

    def test_top_alert_prefers_critical(self, store):
        summary = generate_daily_summary(store, today=TODAY)
        assert summary["top_alert"]["id"] == "a2"

    def test_scans_and_sources(self, store):
        summary = generate_daily_summary(store, today=TODAY)

        assert summary["scans"]["today"] == 2
        assert summary["scans"]["failed_today"] == 1
        assert summary["scans"]["last_scan"]["id"] == "s1"
        assert summary["sources_scanned"] == ["WSIB"]

    def test_cases_targets_snapshots(self, store):
        summary = generate_daily_summary(store, today=TODAY)

        assert summary["cases"] == {"draft": 1, "underReview": 0, "approved": 0, "published": 2}
        assert summary["targets"] == {"total": 1, "critical": 1, "active": 1}
        assert summary["snapshots"] == {"wsib-policies": 2}

    def test_quiet_day_falls_back_to_labels(self, store):
        summary = generate_daily_summary(store, today=date(2026, 4, 1), source_labels=["WSIB", "ODSP"])

        assert summary["alerts"]["new_today"] == 0
        assert summary["top_alert"] is None
        assert summary["sources_scanned"] == ["WSIB", "ODSP"]

    def test_persisted(self, store):
        summary = generate_daily_summary(store, today=TODAY)

        assert store.read(SUMMARY_KEY) == summary
        assert load_daily_summary(store) == summary

    def test_load_missing(self, tmp_path):
        assert load_daily_summary(JsonStore(tmp_path)) is None


class TestPickTopAlert:
    """critical > high > first."""

    def test_fallback_to_first(self):
        alerts = [{"id": "x", "severity": "info"}, {"id": "y", "severity": "medium"}]
        assert pick_top_alert(alerts)["id"] == "x"

    def test_empty(self):
        assert pick_top_alert([]) is None


class TestSystemStats:
    """Store-wide counts."""

    def test_counts(self, store):
        stats = get_system_stats(store)

        assert stats["cases"]["total"] == 3
        assert stats["cases"]["by_status"] == {"DRAFT": 1, "PUBLISHED": 2}
        assert stats["cases"]["by_scope"] == {"provincial": 2, "federal": 1}
        assert stats["alerts"] == {"total": 3, "unacknowledged": 2, "critical": 2}
        assert stats["targets"]["active"] == 1
        assert stats["evidence"]["total"] == 0
        assert stats["scans"]["last_scan"]["id"] == "s1"

    def test_empty_store(self, tmp_path):
        stats = get_system_stats(JsonStore(tmp_path))

        assert stats["cases"]["total"] == 0
        assert stats["scans"]["last_scan"] is None
