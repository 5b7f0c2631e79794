"""
Hash-chained audit trail for cases, targets and evidence.

Each entry stores the hash of the previous entry for the same entity, so
editing or deleting an entry breaks the chain and is detectable.
"""

import logging
from typing import Any, Dict, List, Optional

from .json_store import JsonStore, generate_hash, generate_id, utc_now_iso

logger = logging.getLogger(__name__)

PROVENANCE_KEY = "provenance"
DEFAULT_MAX_ENTRIES = 10_000


def _hashable_view(entry: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in entry.items() if k != "current_hash"}


class ProvenanceLog:
    """Append-only provenance entries backed by ``provenance.json``."""

    def __init__(self, store: JsonStore, max_entries: int = DEFAULT_MAX_ENTRIES):
        self.store = store
        self.max_entries = max_entries

    def add_entry(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        actor: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Append an entry linked to the entity's previous entry.

        Args:
            entity_type: "case", "target" or "evidence"
            entity_id: Id of the entity
            action: CREATED, UPDATED, SUBMIT, APPROVE, ...
            actor: Who performed the action (default "system")
            metadata: Free-form details

        Returns:
            The stored entry, including ``current_hash``
        """
        entries = self.store.read_collection(PROVENANCE_KEY)

        previous = None
        for existing in reversed(entries):
            if existing.get("entity_type") == entity_type and existing.get("entity_id") == entity_id:
                previous = existing
                break

        entry = {
            "id": generate_id(),
            "entity_type": entity_type,
            "entity_id": entity_id,
            "action": action,
            "actor": actor or "system",
            "timestamp": utc_now_iso(),
            "previous_hash": previous.get("current_hash") if previous else None,
            "metadata": metadata or {},
        }
        entry["current_hash"] = generate_hash(entry)

        entries.append(entry)
        if len(entries) > self.max_entries:
            entries = entries[-self.max_entries:]

        self.store.write(PROVENANCE_KEY, entries)
        return entry

    def get_chain(self, entity_type: str, entity_id: str) -> List[Dict[str, Any]]:
        """All entries for one entity, oldest first."""
        entries = [
            e for e in self.store.read_collection(PROVENANCE_KEY)
            if e.get("entity_type") == entity_type and e.get("entity_id") == entity_id
        ]
        return sorted(entries, key=lambda e: e.get("timestamp", ""))

    def verify_chain(self, entity_type: str, entity_id: str) -> Dict[str, Any]:
        """
        Check every link and hash in an entity's chain.

        Returns:
            {"valid": True, "entries": n} or
            {"valid": False, "error": ..., "entry_id": ...}
        """
        chain = self.get_chain(entity_type, entity_id)

        for i, entry in enumerate(chain):
            expected_previous = chain[i - 1].get("current_hash") if i > 0 else None
            if entry.get("previous_hash") != expected_previous:
                return {"valid": False, "error": f"Chain broken at entry {i}", "entry_id": entry.get("id")}

            if entry.get("current_hash") != generate_hash(_hashable_view(entry)):
                return {"valid": False, "error": f"Hash mismatch at entry {i}", "entry_id": entry.get("id")}

        return {"valid": True, "entries": len(chain)}
