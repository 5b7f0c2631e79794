"""Snapshot diffing: compare the current scrape to the previous baseline."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .records import SourceRecord


class ChangeKind(Enum):
    """Kinds of change between two snapshots."""
    NEW = "NEW"
    STATUS_CHANGE = "STATUS_CHANGE"
    TITLE_CHANGE = "TITLE_CHANGE"
    REMOVED = "REMOVED"


# Severity assigned by the detector before relevance scoring
BASE_SEVERITY = {
    ChangeKind.NEW: "info",
    ChangeKind.STATUS_CHANGE: "warning",
    ChangeKind.TITLE_CHANGE: "high",
    ChangeKind.REMOVED: "high",
}


@dataclass(frozen=True)
class ChangeEvent:
    """A single detected change. Never persisted directly."""
    kind: ChangeKind
    current: SourceRecord
    previous: Optional[SourceRecord]
    severity: str
    matched_keywords: List[str] = field(default_factory=list)

    def with_severity(self, severity: str, matched_keywords: List[str]) -> "ChangeEvent":
        return replace(self, severity=severity, matched_keywords=list(matched_keywords))

    def describe(self) -> str:
        """Short human-readable summary, used as the alert message."""
        if self.kind == ChangeKind.STATUS_CHANGE and self.previous is not None:
            return f"Status changed from '{self.previous.status}' to '{self.current.status}'"
        if self.kind == ChangeKind.TITLE_CHANGE and self.previous is not None:
            return f"Title changed from '{self.previous.title}' to '{self.current.title}'"
        if self.kind == ChangeKind.REMOVED:
            return f"No longer listed: {self.current.title}"
        status = f" ({self.current.status})" if self.current.status else ""
        return f"New item: {self.current.title}{status}"


def detect_changes(
    current: Sequence[SourceRecord],
    previous: Sequence[SourceRecord],
    detect_removals: bool = False,
) -> List[ChangeEvent]:
    """
    Diff two snapshots of the same source.

    Args:
        current: Records scraped in this run
        previous: Baseline from the last run (empty on the first run)
        detect_removals: Emit REMOVED for baseline records missing from current

    Returns:
        Events in the order of ``current``, followed by removals in the order
        of ``previous``. With an empty baseline every current record is NEW.
    """
    previous_by_id: Dict[str, SourceRecord] = {}
    for record in previous:
        previous_by_id.setdefault(record.id, record)

    events: List[ChangeEvent] = []
    current_ids = set()

    for record in current:
        current_ids.add(record.id)
        prev = previous_by_id.get(record.id)

        if prev is None:
            kind = ChangeKind.NEW
        elif record.status != prev.status:
            kind = ChangeKind.STATUS_CHANGE
        elif record.title != prev.title:
            kind = ChangeKind.TITLE_CHANGE
        else:
            continue

        events.append(ChangeEvent(kind=kind, current=record, previous=prev, severity=BASE_SEVERITY[kind]))

    if detect_removals:
        for record_id, prev in previous_by_id.items():
            if record_id not in current_ids:
                events.append(ChangeEvent(
                    kind=ChangeKind.REMOVED,
                    current=prev,
                    previous=prev,
                    severity=BASE_SEVERITY[ChangeKind.REMOVED],
                ))

    return events
