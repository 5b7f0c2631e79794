"""Keyword relevance scoring for detected changes.

Severity escalation is a rule table (minimum distinct keyword matches ->
severity) evaluated top-down. All functions are pure.
"""

import json
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .changes import ChangeEvent
from .records import SourceRecord


@dataclass(frozen=True)
class SeverityRule:
    """Escalate to ``severity`` when at least ``min_matches`` keywords match."""
    min_matches: int
    severity: str


DEFAULT_SEVERITY_RULES: Tuple[SeverityRule, ...] = (
    SeverityRule(3, "critical"),
    SeverityRule(2, "high"),
)

RELEVANCE_RULES: Tuple[SeverityRule, ...] = (
    SeverityRule(3, "critical"),
    SeverityRule(2, "high"),
    SeverityRule(1, "medium"),
)


def rules_from_config(config: Optional[Iterable[Dict]]) -> Tuple[SeverityRule, ...]:
    """Build a rule table from ``[{min_matches: 3, severity: critical}, ...]``."""
    if not config:
        return DEFAULT_SEVERITY_RULES
    rules = [SeverityRule(int(r["min_matches"]), str(r["severity"])) for r in config]
    return tuple(sorted(rules, key=lambda r: r.min_matches, reverse=True))


def record_text(record: SourceRecord) -> str:
    """Lowercased JSON serialisation of a record, the text keywords are matched against."""
    return json.dumps(record.to_dict(), sort_keys=True, ensure_ascii=False).lower()


def find_keywords(text: str, keywords: Iterable[str]) -> List[str]:
    """Distinct keywords occurring in ``text`` (case-insensitive), in keyword order."""
    haystack = text.lower()
    found: List[str] = []
    seen = set()
    for keyword in keywords:
        needle = keyword.lower().strip()
        if needle and needle in haystack and needle not in seen:
            seen.add(needle)
            found.append(keyword)
    return found


def matched_keywords(record: SourceRecord, keywords: Iterable[str]) -> List[str]:
    return find_keywords(record_text(record), keywords)


def severity_for(match_count: int, fallback: str, rules: Sequence[SeverityRule] = DEFAULT_SEVERITY_RULES) -> str:
    """First rule satisfied by ``match_count``, else ``fallback``."""
    for rule in rules:
        if match_count >= rule.min_matches:
            return rule.severity
    return fallback


def classify(
    events: Sequence[ChangeEvent],
    keywords: Sequence[str],
    rules: Sequence[SeverityRule] = DEFAULT_SEVERITY_RULES,
) -> List[ChangeEvent]:
    """
    Keep only events whose record mentions a relevance keyword.

    Args:
        events: Output of ``detect_changes``
        keywords: Relevance keyword set for the source
        rules: Severity escalation table

    Returns:
        New events (inputs untouched) with escalated severity and the matched
        keywords attached, in input order.
    """
    relevant: List[ChangeEvent] = []
    for event in events:
        found = matched_keywords(event.current, keywords)
        if not found:
            continue
        severity = severity_for(len(found), event.severity, rules)
        relevant.append(event.with_severity(severity, found))
    return relevant


def assess_relevance(text: str, keywords: Sequence[str]) -> Dict[str, object]:
    """
    Grade free text (feed items, dataset descriptions) by keyword hits.

    Returns:
        {"relevance": critical|high|medium|low, "matched_keywords": [...]}
    """
    found = find_keywords(text, keywords)
    return {
        "relevance": severity_for(len(found), "low", RELEVANCE_RULES),
        "matched_keywords": found,
    }
