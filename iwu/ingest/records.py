"""
Snapshot records produced by the scrapers.

Each source declares which raw field identifies a record (bill number,
policy title, dataset id, ...). ``build_records`` maps raw scraper output
onto ``SourceRecord`` using that key and validates it before anything
reaches the change detector.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import jsonschema

logger = logging.getLogger(__name__)

RECORD_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["id", "title", "status", "source_url", "scanned_at"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "title": {"type": "string", "minLength": 1},
        "status": {"type": "string"},
        "source_url": {"type": "string"},
        "scanned_at": {"type": "string"},
        "details": {"type": "object"},
    },
}


@dataclass
class SourceRecord:
    """One item of a source snapshot."""
    id: str
    title: str
    status: str = ""
    source_url: str = ""
    scanned_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "source_url": self.source_url,
            "scanned_at": self.scanned_at,
            "details": dict(self.details),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceRecord":
        return cls(
            id=str(data.get("id", "")),
            title=data.get("title", ""),
            status=data.get("status", ""),
            source_url=data.get("source_url", ""),
            scanned_at=data.get("scanned_at", ""),
            details=dict(data.get("details") or {}),
        )


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split())


def build_records(
    raw_items: Iterable[Dict[str, Any]],
    identity_key: str,
    default_url: str = "",
    scanned_at: Optional[str] = None,
) -> List[SourceRecord]:
    """
    Convert raw scraper dicts into validated ``SourceRecord``s.

    Args:
        raw_items: Dicts as extracted from the page or API
        identity_key: Raw field that identifies an item within its source
        default_url: Used when an item carries no ``url`` of its own
        scanned_at: Timestamp for the whole snapshot (default: now)

    Returns:
        Records in input order. Items without an identity or title, items
        failing schema validation, and repeated identities are dropped.
    """
    scanned_at = scanned_at or datetime.now(timezone.utc).isoformat()
    records: List[SourceRecord] = []
    seen = set()

    for raw in raw_items:
        record_id = _clean(raw.get(identity_key))
        title = _clean(raw.get("title")) or record_id

        details = {
            k: v for k, v in raw.items()
            if k not in (identity_key, "title", "status", "url") and v not in (None, "")
        }
        candidate = {
            "id": record_id,
            "title": title,
            "status": _clean(raw.get("status")),
            "source_url": raw.get("url") or default_url,
            "scanned_at": scanned_at,
            "details": details,
        }

        try:
            jsonschema.validate(candidate, RECORD_SCHEMA)
        except jsonschema.ValidationError as e:
            logger.debug(f"Dropping invalid record {raw!r}: {e.message}")
            continue

        if record_id in seen:
            continue
        seen.add(record_id)
        records.append(SourceRecord.from_dict(candidate))

    return records


def load_snapshot(data: Any) -> List[SourceRecord]:
    """Parse a persisted snapshot; anything that is not a list is an empty baseline."""
    if not isinstance(data, list):
        return []
    return [SourceRecord.from_dict(item) for item in data if isinstance(item, dict) and item.get("id")]
