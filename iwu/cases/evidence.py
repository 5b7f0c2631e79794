"""Evidence records attached to cases."""

import hashlib
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..store.json_store import JsonStore, generate_hash, utc_now_iso
from ..store.provenance import ProvenanceLog
from ..store.validation import EVIDENCE_SCHEMA, validate_payload
from .workflow import CaseRepository

logger = logging.getLogger(__name__)

EVIDENCE_KEY = "evidence"

CHUNK_SIZE = 65536


def file_sha256(path: Path) -> str:
    """SHA-256 hex digest of a file, read in chunks."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def resolve_storage_path(evidence_root: Path, storage_path: str) -> Path:
    """Stored paths are relative to the evidence root unless absolute."""
    path = Path(storage_path)
    return path if path.is_absolute() else evidence_root / path


class EvidenceRepository:
    """Evidence metadata in evidence.json; files live under ``evidence_root``."""

    def __init__(
        self,
        store: JsonStore,
        provenance: ProvenanceLog,
        cases: CaseRepository,
        evidence_root: Union[str, Path],
    ):
        self.store = store
        self.provenance = provenance
        self.cases = cases
        self.evidence_root = Path(evidence_root)

    def create_evidence(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Record a piece of evidence and attach it to its case.

        The hash comes from the stored file when it exists, otherwise from the
        submitted metadata.

        Raises:
            ValidationError: If case_id or file_name is missing
        """
        validate_payload(fields, EVIDENCE_SCHEMA)

        storage_path = fields.get("storage_path")
        file_size = fields.get("file_size", 0)
        sha256_hash = fields.get("sha256_hash")

        if storage_path:
            path = resolve_storage_path(self.evidence_root, storage_path)
            if path.exists():
                sha256_hash = sha256_hash or file_sha256(path)
                file_size = file_size or path.stat().st_size
            else:
                logger.warning(f"Evidence file not found at {path}; hashing metadata instead")

        evidence = self.store.create_record(EVIDENCE_KEY, {
            "case_id": fields["case_id"],
            "file_name": fields["file_name"],
            "file_type": fields.get("file_type", ""),
            "file_size": file_size,
            "storage_path": storage_path,
            "sha256_hash": sha256_hash or generate_hash(fields),
            "captured_at": fields.get("captured_at") or utc_now_iso(),
            "source_url": fields.get("source_url", ""),
            "description": fields.get("description", ""),
            "metadata": dict(fields.get("metadata") or {}),
        })

        if self.cases.add_evidence_id(evidence["case_id"], evidence["id"]) is None:
            logger.warning(f"Evidence {evidence['id']} references unknown case {evidence['case_id']}")

        self.provenance.add_entry("evidence", evidence["id"], "CREATED", "system", {
            "case_id": evidence["case_id"],
            "file_name": evidence["file_name"],
            "sha256_hash": evidence["sha256_hash"],
        })
        return evidence

    def get_evidence(self, case_id: Optional[str] = None, file_type: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.store.filter_records(EVIDENCE_KEY, case_id=case_id, file_type=file_type)

    def get_evidence_by_id(self, evidence_id: str) -> Optional[Dict[str, Any]]:
        return self.store.find_record(EVIDENCE_KEY, evidence_id)
