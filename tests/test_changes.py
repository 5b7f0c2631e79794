"""Tests for snapshot records, change detection and relevance scoring."""

import pytest

from iwu.ingest.changes import ChangeKind, detect_changes
from iwu.ingest.records import SourceRecord, build_records, load_snapshot
from iwu.ingest.relevance import (
    SeverityRule,
    assess_relevance,
    classify,
    find_keywords,
    rules_from_config,
)


def rec(record_id, title="Some Act", status="First Reading", **details):
    return SourceRecord(
        id=record_id,
        title=title,
        status=status,
        source_url="https://example.org/bills",
        scanned_at="2024-03-01T00:00:00+00:00",
        details=details,
    )


# =============================================================================
# Records
# =============================================================================

class TestBuildRecords:
    """Raw scraper dicts become validated, de-duplicated records."""

    def test_identity_key_becomes_id(self):
        records = build_records(
            [{"number": "Bill 12", "title": "Act", "status": "Passed", "sponsor": "MPP"}],
            identity_key="number",
            default_url="https://example.org",
        )

        assert records[0].id == "Bill 12"
        assert records[0].source_url == "https://example.org"
        assert records[0].details == {"sponsor": "MPP"}

    def test_item_url_wins_over_default(self):
        records = build_records([{"id": "x", "title": "T", "url": "https://example.org/x"}], "id", "https://example.org")
        assert records[0].source_url == "https://example.org/x"

    def test_missing_identity_dropped(self):
        records = build_records([{"title": "No number"}, {"number": "B1", "title": "Ok"}], "number")
        assert [r.id for r in records] == ["B1"]

    def test_title_falls_back_to_identity(self):
        records = build_records([{"name": "Fraser Institute"}], "name")
        assert records[0].title == "Fraser Institute"

    def test_duplicate_identity_first_wins(self):
        records = build_records(
            [{"number": "B1", "title": "First"}, {"number": "B1", "title": "Second"}],
            "number",
        )
        assert [r.title for r in records] == ["First"]

    def test_whitespace_collapsed(self):
        records = build_records([{"number": " B1 ", "title": "An\n   Act"}], "number")
        assert records[0].id == "B1"
        assert records[0].title == "An Act"

    def test_load_snapshot_tolerates_garbage(self):
        assert load_snapshot(None) == []
        assert load_snapshot({"not": "a list"}) == []
        assert [r.id for r in load_snapshot([{"id": "a", "title": "A"}, "junk", {}])] == ["a"]

    def test_round_trip_through_dict(self):
        record = rec("B1", sponsor="MPP")
        assert SourceRecord.from_dict(record.to_dict()) == record


# =============================================================================
# Change detection
# =============================================================================

class TestDetectChanges:
    """Diff semantics between current and previous snapshots."""

    def test_empty_baseline_everything_new(self):
        events = detect_changes([rec("B1"), rec("B2")], [])

        assert [e.kind for e in events] == [ChangeKind.NEW, ChangeKind.NEW]
        assert all(e.severity == "info" and e.previous is None for e in events)

    def test_identical_snapshots_no_events(self):
        snapshot = [rec("B1"), rec("B2")]
        assert detect_changes(snapshot, snapshot) == []

    def test_status_change(self):
        events = detect_changes([rec("B1", status="Royal Assent")], [rec("B1")])

        assert len(events) == 1
        assert events[0].kind == ChangeKind.STATUS_CHANGE
        assert events[0].severity == "warning"
        assert events[0].previous.status == "First Reading"

    def test_status_change_wins_over_title_change(self):
        events = detect_changes([rec("B1", title="Renamed", status="Passed")], [rec("B1")])
        assert events[0].kind == ChangeKind.STATUS_CHANGE

    def test_title_change(self):
        events = detect_changes([rec("B1", title="Renamed Act")], [rec("B1")])

        assert events[0].kind == ChangeKind.TITLE_CHANGE
        assert events[0].severity == "high"

    def test_removals_off_by_default(self):
        assert detect_changes([rec("B1")], [rec("B1"), rec("B2")]) == []

    def test_removal_detected_when_enabled(self):
        gone = rec("B2", title="Old Policy")
        events = detect_changes([rec("B1")], [rec("B1"), gone], detect_removals=True)

        assert len(events) == 1
        assert events[0].kind == ChangeKind.REMOVED
        assert events[0].current == gone
        assert events[0].previous == gone
        assert "No longer listed" in events[0].describe()

    def test_events_follow_current_order_then_removals(self):
        current = [rec("C"), rec("A", status="Passed"), rec("B")]
        previous = [rec("A"), rec("Z")]

        events = detect_changes(current, previous, detect_removals=True)

        assert [e.current.id for e in events] == ["C", "A", "B", "Z"]

    def test_inputs_not_mutated(self):
        current = [rec("B1", status="Passed")]
        previous = [rec("B1")]
        detect_changes(current, previous, detect_removals=True)

        assert current[0].status == "Passed"
        assert previous[0].status == "First Reading"

    def test_bill_reading_advances(self):
        events = detect_changes(
            [rec("Bill-1", status="Second Reading")],
            [rec("Bill-1", status="First Reading")],
        )

        assert len(events) == 1
        assert events[0].kind == ChangeKind.STATUS_CHANGE
        assert events[0].current.status == "Second Reading"
        assert events[0].previous.status == "First Reading"
        assert classify(events, ["disability"]) == []

    def test_describe_status_change(self):
        event = detect_changes([rec("B1", status="Passed")], [rec("B1")])[0]
        assert event.describe() == "Status changed from 'First Reading' to 'Passed'"


# =============================================================================
# Relevance
# =============================================================================

KEYWORDS = ["disability", "WSIB", "benefit", "eligibility"]


class TestClassify:
    """Keyword filter and severity escalation."""

    def test_irrelevant_events_dropped(self):
        events = detect_changes([rec("B1", title="Highway Traffic Amendment")], [])
        assert classify(events, KEYWORDS) == []

    def test_one_match_keeps_detector_severity(self):
        events = detect_changes([rec("B1", title="Disability Support Act")], [])
        result = classify(events, KEYWORDS)

        assert result[0].severity == "info"
        assert result[0].matched_keywords == ["disability"]

    def test_two_matches_high(self):
        events = detect_changes([rec("B1", title="WSIB Benefit Review")], [])
        assert classify(events, KEYWORDS)[0].severity == "high"

    def test_three_matches_critical(self):
        events = detect_changes([rec("B1", title="WSIB disability benefit eligibility changes")], [])
        assert classify(events, KEYWORDS)[0].severity == "critical"

    def test_matching_is_case_insensitive(self):
        events = detect_changes([rec("B1", title="wsib")], [])
        assert classify(events, KEYWORDS)[0].matched_keywords == ["WSIB"]

    def test_details_are_searched(self):
        events = detect_changes([rec("B1", title="Act 5", sponsor="Minister of Disability")], [])
        assert len(classify(events, KEYWORDS)) == 1

    def test_inputs_not_mutated(self):
        events = detect_changes([rec("B1", title="WSIB Benefit Review")], [])
        classify(events, KEYWORDS)

        assert events[0].severity == "info"
        assert events[0].matched_keywords == []

    def test_keyword_listed_twice_counts_once(self):
        events = detect_changes([rec("B1", title="WSIB Act")], [])
        result = classify(events, ["WSIB", "wsib"])

        assert result[0].matched_keywords == ["WSIB"]
        assert result[0].severity == "info"

    def test_order_independent(self):
        events = detect_changes([rec("A", title="WSIB Act"), rec("B", title="Benefit Eligibility Act")], [])

        forward = classify(events, KEYWORDS)
        backward = classify(list(reversed(events)), KEYWORDS)

        key = lambda e: e.current.id
        assert [(e.current.id, e.severity) for e in sorted(forward, key=key)] == \
               [(e.current.id, e.severity) for e in sorted(backward, key=key)]

    def test_custom_rule_table(self):
        rules = rules_from_config([{"min_matches": 1, "severity": "medium"}, {"min_matches": 4, "severity": "critical"}])
        assert rules[0] == SeverityRule(4, "critical")

        events = detect_changes([rec("B1", title="Disability Act")], [])
        assert classify(events, KEYWORDS, rules)[0].severity == "medium"

    def test_empty_rule_config_uses_defaults(self):
        assert rules_from_config(None)[0] == SeverityRule(3, "critical")


class TestAssessRelevance:
    """Grading free text."""

    @pytest.mark.parametrize("text,expected", [
        ("Road tolls", "low"),
        ("Disability tax credit", "medium"),
        ("WSIB disability review", "high"),
        ("WSIB disability benefit", "critical"),
    ])
    def test_grades(self, text, expected):
        assert assess_relevance(text, KEYWORDS)["relevance"] == expected

    def test_keywords_reported_once(self):
        assert find_keywords("benefit benefit BENEFIT", KEYWORDS) == ["benefit"]

    def test_case_variants_reported_once(self):
        assert find_keywords("wsib policy", ["WSIB", "wsib", " Wsib "]) == ["WSIB"]
        assert assess_relevance("wsib policy", ["WSIB", "wsib"])["relevance"] == "medium"
