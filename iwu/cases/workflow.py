"""
Case records and their review workflow.

    DRAFT --submit--> UNDER_REVIEW --approve--> APPROVED --publish--> PUBLISHED
    any state --retract--> RETRACTED

Transitions are guarded; anything else raises ``InvalidTransition`` before
the case is touched. There is no way back except a fresh case.
"""

import logging
from enum import Enum
from typing import Any, Dict, FrozenSet, List, NamedTuple, Optional

from ..store.json_store import JsonStore, utc_now_iso
from ..store.provenance import ProvenanceLog
from ..store.validation import CASE_SCHEMA, ValidationError, validate_payload

logger = logging.getLogger(__name__)

CASES_KEY = "cases"


class CaseStatus(Enum):
    """Lifecycle states of a case."""
    DRAFT = "DRAFT"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    PUBLISHED = "PUBLISHED"
    RETRACTED = "RETRACTED"


class Transition(NamedTuple):
    allowed_from: Optional[FrozenSet[CaseStatus]]  # None = any state
    target: CaseStatus


TRANSITIONS: Dict[str, Transition] = {
    "submit": Transition(frozenset({CaseStatus.DRAFT}), CaseStatus.UNDER_REVIEW),
    "approve": Transition(frozenset({CaseStatus.UNDER_REVIEW}), CaseStatus.APPROVED),
    "publish": Transition(frozenset({CaseStatus.APPROVED}), CaseStatus.PUBLISHED),
    "retract": Transition(None, CaseStatus.RETRACTED),
}

# Fields the workflow owns; generic updates may not set them
_WORKFLOW_FIELDS = {"id", "status", "created_at", "approved_by", "published_at", "evidence_ids"}


class InvalidTransition(Exception):
    """Raised when a workflow action is not allowed from the case's current state."""
    def __init__(self, action: str, current: str, allowed: List[str]):
        self.action = action
        self.current = current
        self.allowed = allowed
        required = " or ".join(allowed)
        super().__init__(f"Cannot {action} a case in state {current}; requires {required}")


def check_transition(action: str, current: CaseStatus) -> CaseStatus:
    """
    Resolve ``action`` from ``current`` to the target state.

    Raises:
        ValidationError: Unknown action
        InvalidTransition: Action not allowed from ``current``
    """
    transition = TRANSITIONS.get(action)
    if transition is None:
        valid = ", ".join(TRANSITIONS)
        raise ValidationError(f"Unknown action: {action}. Valid actions: {valid}", field="action")

    if transition.allowed_from is not None and current not in transition.allowed_from:
        raise InvalidTransition(action, current.value, sorted(s.value for s in transition.allowed_from))

    return transition.target


class CaseRepository:
    """CRUD and workflow operations over cases.json."""

    def __init__(self, store: JsonStore, provenance: ProvenanceLog):
        self.store = store
        self.provenance = provenance

    def create_case(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a DRAFT case.

        Raises:
            ValidationError: If title or category is missing
        """
        validate_payload(fields, CASE_SCHEMA)
        now = utc_now_iso()

        case = {
            "title": fields["title"].strip(),
            "status": CaseStatus.DRAFT.value,
            "category": fields["category"],
            "scope": fields.get("scope", "provincial"),
            "severity": fields.get("severity", "medium"),
            "summary": fields.get("summary", ""),
            "full_analysis": fields.get("full_analysis"),
            "source_urls": list(fields.get("source_urls", [])),
            "charter_violations": list(fields.get("charter_violations", [])),
            "uncrpd_violations": list(fields.get("uncrpd_violations", [])),
            "affected_count": fields.get("affected_count", ""),
            "financial_impact": fields.get("financial_impact", ""),
            "target_entity": fields.get("target_entity"),
            "evidence_ids": [],
            "created_at": now,
            "updated_at": now,
            "published_at": None,
            "created_by": fields.get("created_by", "system"),
            "updated_by": fields.get("created_by", "system"),
            "approved_by": None,
        }
        case = self.store.create_record(CASES_KEY, case)

        self.provenance.add_entry("case", case["id"], "CREATED", case["created_by"], {
            "title": case["title"],
            "category": case["category"],
        })
        return case

    def get_case(self, case_id: str) -> Optional[Dict[str, Any]]:
        return self.store.find_record(CASES_KEY, case_id)

    def list_cases(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None,
        scope: Optional[str] = None,
        severity: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return self.store.filter_records(CASES_KEY, status=status, category=category, scope=scope, severity=severity)

    def update_case(self, case_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Merge editable fields into a case. Status changes go through ``apply_action``.

        Returns:
            Updated case, or None if not found
        """
        if "status" in patch:
            raise ValidationError("Case status can only be changed through a workflow action", field="status")
        if "title" in patch and not str(patch["title"] or "").strip():
            raise ValidationError("Field 'title' must not be empty", field="title")

        editable = {k: v for k, v in patch.items() if k not in _WORKFLOW_FIELDS}
        return self._write_update(case_id, editable, action="UPDATED", actor=editable.get("updated_by"))

    def apply_action(self, case_id: str, action: str, actor: str = "admin") -> Optional[Dict[str, Any]]:
        """
        Run a workflow action (submit, approve, publish, retract).

        Returns:
            Updated case, or None if not found

        Raises:
            ValidationError: Unknown action
            InvalidTransition: Action not allowed from the current state
        """
        case = self.get_case(case_id)
        if case is None:
            return None

        target = check_transition(action, CaseStatus(case["status"]))

        patch: Dict[str, Any] = {"status": target.value, "updated_by": actor}
        if target == CaseStatus.APPROVED:
            patch["approved_by"] = actor
        elif target == CaseStatus.PUBLISHED:
            patch["published_at"] = utc_now_iso()

        logger.info(f"Case {case_id}: {action} by {actor} ({case['status']} -> {target.value})")
        return self._write_update(case_id, patch, action=action.upper(), actor=actor, old_status=case["status"])

    def submit(self, case_id: str, actor: str = "admin") -> Optional[Dict[str, Any]]:
        return self.apply_action(case_id, "submit", actor)

    def approve(self, case_id: str, actor: str = "admin") -> Optional[Dict[str, Any]]:
        return self.apply_action(case_id, "approve", actor)

    def publish(self, case_id: str, actor: str = "admin") -> Optional[Dict[str, Any]]:
        return self.apply_action(case_id, "publish", actor)

    def retract(self, case_id: str, actor: str = "admin") -> Optional[Dict[str, Any]]:
        return self.apply_action(case_id, "retract", actor)

    def add_evidence_id(self, case_id: str, evidence_id: str) -> Optional[Dict[str, Any]]:
        case = self.get_case(case_id)
        if case is None:
            return None
        evidence_ids = list(case.get("evidence_ids") or [])
        if evidence_id not in evidence_ids:
            evidence_ids.append(evidence_id)
        return self.store.update_record(CASES_KEY, case_id, {"evidence_ids": evidence_ids})

    def _write_update(
        self,
        case_id: str,
        patch: Dict[str, Any],
        action: str,
        actor: Optional[str],
        old_status: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        patch = {**patch, "updated_at": utc_now_iso()}
        updated = self.store.update_record(CASES_KEY, case_id, patch)
        if updated is None:
            return None

        self.provenance.add_entry("case", case_id, action, actor or "system", {
            "changes": sorted(k for k in patch if k != "updated_at"),
            "old_status": old_status or updated["status"],
            "new_status": updated["status"],
        })
        return updated
