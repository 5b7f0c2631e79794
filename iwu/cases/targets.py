"""Monitored entities (agencies, insurers, ministries) linked to cases."""

import logging
from typing import Any, Dict, List, Optional

from ..store.json_store import JsonStore, utc_now_iso
from ..store.provenance import ProvenanceLog
from ..store.validation import TARGET_SCHEMA, validate_payload

logger = logging.getLogger(__name__)

TARGETS_KEY = "targets"


class TargetRepository:
    """Targets are unique by name, compared case-insensitively."""

    def __init__(self, store: JsonStore, provenance: ProvenanceLog):
        self.store = store
        self.provenance = provenance

    def create_target(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a target, or update the existing one with the same name.

        Raises:
            ValidationError: If name or type is missing
        """
        validate_payload(fields, TARGET_SCHEMA)

        existing = self.get_target_by_name(fields["name"])
        if existing is not None:
            logger.debug(f"Target '{fields['name']}' exists, updating {existing['id']}")
            return self.update_target(existing["id"], fields)

        now = utc_now_iso()
        target = self.store.create_record(TARGETS_KEY, {
            "name": fields["name"].strip(),
            "type": fields["type"],
            "jurisdiction": fields.get("jurisdiction"),
            "leadership": fields.get("leadership", ""),
            "budget": fields.get("budget", ""),
            "corruption_indicators": list(fields.get("corruption_indicators", [])),
            "related_cases": list(fields.get("related_cases", [])),
            "evidence_count": fields.get("evidence_count", 0),
            "threat_level": fields.get("threat_level", "medium"),
            "status": "active_monitoring",
            "created_at": now,
            "updated_at": now,
        })

        self.provenance.add_entry("target", target["id"], "CREATED", "system", {
            "name": target["name"],
            "type": target["type"],
        })
        return target

    def get_target(self, target_id: str) -> Optional[Dict[str, Any]]:
        return self.store.find_record(TARGETS_KEY, target_id)

    def get_target_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        wanted = (name or "").strip().lower()
        for target in self.store.read_collection(TARGETS_KEY):
            if (target.get("name") or "").lower() == wanted:
                return target
        return None

    def list_targets(
        self,
        type: Optional[str] = None,
        jurisdiction: Optional[str] = None,
        threat_level: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return self.store.filter_records(
            TARGETS_KEY, type=type, jurisdiction=jurisdiction, threat_level=threat_level, status=status,
        )

    def update_target(self, target_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        patch = {k: v for k, v in patch.items() if k not in ("id", "created_at")}
        patch["updated_at"] = utc_now_iso()
        return self.store.update_record(TARGETS_KEY, target_id, patch)

    def link_case(self, target_id: str, case_id: str) -> Optional[Dict[str, Any]]:
        """Attach a case to a target; linking the same case twice is a no-op."""
        target = self.get_target(target_id)
        if target is None:
            return None

        related = list(target.get("related_cases") or [])
        if case_id in related:
            return target

        related.append(case_id)
        return self.store.update_record(TARGETS_KEY, target_id, {
            "related_cases": related,
            "evidence_count": int(target.get("evidence_count") or 0) + 1,
            "updated_at": utc_now_iso(),
        })
