"""
Downloadable evidence bundles.

A bundle is a zip holding the case analysis, evidence metadata and files,
the provenance chain, the target dossier and a manifest with the SHA-256 of
every file. ``bundle_hash`` is the SHA-256 of the file hashes concatenated
in manifest order, so any edit to any file is detectable.

Layout:
    analysis/case-analysis.json
    analysis/case-report.md
    evidence/<id>.meta.json
    evidence/files/<id>-<file_name>      (evidence with a stored file)
    provenance/audit-trail.json
    targets/target-dossier.json          (when the case names a known target)
    verification/how-to-verify.md
    README.md
    manifest.json                        (always last)
"""

import hashlib
import io
import json
import logging
import os
import time
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ..cases.evidence import EvidenceRepository, resolve_storage_path
from ..cases.targets import TargetRepository
from ..cases.workflow import CaseRepository
from ..config.settings import DEFAULT_SITE_URL
from ..store.json_store import utc_now_iso
from ..store.provenance import ProvenanceLog

logger = logging.getLogger(__name__)

BUNDLE_VERSION = "1.0.0"

LEGAL_DISCLAIMER = (
    "This evidence bundle is provided for informational purposes only. "
    "All information is sourced from publicly accessible government documents, "
    "court decisions and official reports. This is not legal advice. Verify the "
    "information independently before any legal or advocacy use, and consult a "
    "qualified lawyer for legal matters."
)


class BundleIntegrityError(Exception):
    """Raised when a bundle cannot be built completely (missing case or evidence file)."""
    def __init__(self, case_id: str, message: str):
        self.case_id = case_id
        self.message = message
        super().__init__(f"Bundle for case {case_id}: {message}")


@dataclass
class EvidenceBundle:
    """A finished bundle held in memory."""
    filename: str
    content: bytes
    manifest: Dict[str, Any]

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def bundle_hash(self) -> str:
        return self.manifest["integrity"]["bundle_hash"]


def sha256_hex(content: Union[str, bytes]) -> str:
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def compute_bundle_hash(file_entries: List[Dict[str, Any]]) -> str:
    """SHA-256 over the concatenated per-file hashes, in manifest order."""
    return sha256_hex("".join(entry["sha256"] for entry in file_entries))


def _bullets(items: Optional[List[str]], empty: str) -> str:
    return "\n".join(f"- {item}" for item in items) if items else empty


def _numbered(items: Optional[List[str]], empty: str) -> str:
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, 1)) if items else empty


def _target_name(target_entity: Any) -> Optional[str]:
    if isinstance(target_entity, dict):
        return target_entity.get("name")
    if isinstance(target_entity, str):
        return target_entity
    return None


class EvidenceBundler:
    """Assembles bundles from the case, evidence, target and provenance stores."""

    def __init__(
        self,
        cases: CaseRepository,
        evidence: EvidenceRepository,
        targets: TargetRepository,
        provenance: ProvenanceLog,
        evidence_root: Union[str, Path],
        site_url: str = DEFAULT_SITE_URL,
    ):
        self.cases = cases
        self.evidence = evidence
        self.targets = targets
        self.provenance = provenance
        self.evidence_root = Path(evidence_root)
        self.site_url = site_url.rstrip("/")

    def create_bundle(self, case_id: str) -> EvidenceBundle:
        """
        Build the bundle for one case.

        Status is not checked here; callers that serve bundles publicly must
        restrict them to published cases.

        Raises:
            BundleIntegrityError: Case not found, or an evidence record points
                at a file that does not exist
        """
        case = self.cases.get_case(case_id)
        if case is None:
            raise BundleIntegrityError(case_id, "case not found")

        evidence_items = self.evidence.get_evidence(case_id=case_id)
        evidence_files = self._collect_evidence_files(case_id, evidence_items)

        files: List[Tuple[str, bytes, Dict[str, Any]]] = []

        def add(path: str, content: Union[str, bytes], file_type: str, **extra: Any) -> None:
            data = content.encode("utf-8") if isinstance(content, str) else content
            files.append((path, data, {"path": path, "sha256": sha256_hex(data), "type": file_type, **extra}))

        add("analysis/case-analysis.json", self._dump(self._analysis(case)), "json",
            description="Structured case analysis")
        add("analysis/case-report.md", self._report(case), "markdown",
            description="Human-readable case report")

        for item in evidence_items:
            meta = {k: item.get(k) for k in (
                "id", "file_name", "file_type", "sha256_hash", "captured_at",
                "source_url", "description", "storage_path",
            )}
            add(f"evidence/{item['id']}.meta.json", self._dump(meta), "evidence-metadata",
                original_file=item.get("file_name"), original_hash=item.get("sha256_hash"))

        for item, path in evidence_files:
            add(f"evidence/files/{item['id']}-{item['file_name']}", path.read_bytes(), "evidence-file",
                original_hash=item.get("sha256_hash"))

        add("provenance/audit-trail.json", self._dump(self._audit_trail(case_id)), "json",
            description="Provenance chain with hash verification")

        target = self._find_target(case)
        if target is not None:
            add("targets/target-dossier.json", self._dump(self._dossier(target)), "json",
                description="Target entity dossier")

        add("verification/how-to-verify.md", self._verification_guide(case), "markdown",
            description="Guide for independently verifying all claims")
        add("README.md", self._readme(case), "markdown", description="Bundle overview")

        file_entries = [entry for _, _, entry in files]
        manifest = {
            "bundle_version": BUNDLE_VERSION,
            "case_id": case_id,
            "case_title": case.get("title"),
            "generated_at": utc_now_iso(),
            "integrity": {
                "algorithm": "SHA-256",
                "files": file_entries,
                "bundle_hash": compute_bundle_hash(file_entries),
            },
            "case_summary": {k: case.get(k) for k in (
                "status", "category", "scope", "severity", "created_at", "published_at",
                "charter_violations", "uncrpd_violations", "affected_count", "financial_impact",
            )},
            "sources": case.get("source_urls", []),
            "legal_disclaimer": LEGAL_DISCLAIMER,
        }

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
            for path, data, _ in files:
                zf.writestr(path, data)
            zf.writestr("manifest.json", self._dump(manifest))

        filename = f"IWU-Evidence-Bundle-{case_id[:8]}-{int(time.time() * 1000)}.zip"
        bundle = EvidenceBundle(filename=filename, content=buffer.getvalue(), manifest=manifest)
        logger.info(f"Built {filename}: {len(files) + 1} files, {bundle.size} bytes, hash {bundle.bundle_hash[:12]}")
        return bundle

    def _collect_evidence_files(self, case_id: str, items: List[Dict[str, Any]]) -> List[Tuple[Dict[str, Any], Path]]:
        found = []
        for item in items:
            if not item.get("storage_path"):
                continue
            path = resolve_storage_path(self.evidence_root, item["storage_path"])
            if not path.is_file():
                raise BundleIntegrityError(case_id, f"evidence file missing for {item['id']}: {path}")
            found.append((item, path))
        return found

    def _find_target(self, case: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        name = _target_name(case.get("target_entity"))
        return self.targets.get_target_by_name(name) if name else None

    @staticmethod
    def _dump(data: Any) -> str:
        return json.dumps(data, indent=2, ensure_ascii=False)

    def _audit_trail(self, case_id: str) -> Dict[str, Any]:
        chain = self.provenance.get_chain("case", case_id)
        return {
            "entity_type": "case",
            "entity_id": case_id,
            "chain": chain,
            "verification": self.provenance.verify_chain("case", case_id),
            "w3c_prov": {
                "@context": "https://www.w3.org/ns/prov.jsonld",
                "@graph": [{
                    "@id": f"iwu:entry/{e['id']}",
                    "@type": "prov:Activity",
                    "prov:startedAtTime": e.get("timestamp"),
                    "prov:wasAssociatedWith": {"@id": f"iwu:agent/{e.get('actor')}", "@type": "prov:Agent"},
                    "prov:used": {"@id": f"iwu:{e.get('entity_type')}/{e.get('entity_id')}"},
                    "prov:type": e.get("action"),
                    "iwu:previousHash": e.get("previous_hash"),
                    "iwu:currentHash": e.get("current_hash"),
                } for e in chain],
            },
        }

    @staticmethod
    def _analysis(case: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "meta": {"version": BUNDLE_VERSION, "timestamp": utc_now_iso()},
            "case": {k: case.get(k) for k in ("id", "title", "status", "category", "scope", "severity")},
            "summary": case.get("summary"),
            "full_analysis": case.get("full_analysis"),
            "violations": {
                "charter": case.get("charter_violations", []),
                "uncrpd": case.get("uncrpd_violations", []),
            },
            "impact": {
                "affected_count": case.get("affected_count"),
                "financial_impact": case.get("financial_impact"),
            },
            "target_entity": case.get("target_entity"),
            "sources": case.get("source_urls", []),
            "evidence_count": len(case.get("evidence_ids") or []),
            "timeline": {
                "created": case.get("created_at"),
                "updated": case.get("updated_at"),
                "published": case.get("published_at"),
            },
        }

    @staticmethod
    def _dossier(target: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "meta": {"generated_at": utc_now_iso()},
            "target": {k: target.get(k) for k in (
                "id", "name", "type", "jurisdiction", "leadership", "budget", "threat_level", "status",
            )},
            "corruption_profile": {
                "indicators": target.get("corruption_indicators", []),
                "evidence_count": target.get("evidence_count", 0),
                "related_cases": target.get("related_cases", []),
            },
            "timeline": {
                "first_detected": target.get("created_at"),
                "last_updated": target.get("updated_at"),
            },
        }

    @staticmethod
    def _report(case: Dict[str, Any]) -> str:
        target = case.get("target_entity")
        if isinstance(target, dict):
            target_section = (
                f"**Name:** {target.get('name', 'Unknown')}  \n"
                f"**Type:** {target.get('type', 'Unknown')}  \n"
                f"**Jurisdiction:** {target.get('jurisdiction', 'Unknown')}  \n\n"
                f"### Indicators\n{_bullets(target.get('corruption_indicators'), 'None documented.')}"
            )
        elif target:
            target_section = f"**Name:** {target}"
        else:
            target_section = "No target entity identified."

        published = f"\n- **Published:** {case['published_at']}" if case.get("published_at") else ""

        return f"""# {case['title']}

## Executive Summary

**Case ID:** {case['id']}
**Status:** {case['status']}
**Severity:** {(case.get('severity') or 'unknown').upper()}
**Category:** {case.get('category')}
**Scope:** {case.get('scope')}

## Overview

{case.get('summary') or 'No summary available.'}

## Findings

### Charter of Rights Violations

{_bullets(case.get('charter_violations'), 'No Charter violations identified.')}

### UN Convention on the Rights of Persons with Disabilities

{_bullets(case.get('uncrpd_violations'), 'No UNCRPD violations identified.')}

## Impact Assessment

**People Affected:** {case.get('affected_count') or 'Unknown'}
**Financial Impact:** {case.get('financial_impact') or 'Unknown'}

## Target Entity

{target_section}

## Sources

{_numbered(case.get('source_urls'), 'No sources provided.')}

## Timeline

- **Created:** {case.get('created_at')}
- **Last Updated:** {case.get('updated_at')}{published}

See `verification/how-to-verify.md` to check every claim against its source.
"""

    @staticmethod
    def _verification_guide(case: Dict[str, Any]) -> str:
        return f"""# How to Verify This Evidence Bundle

## 1. Check the Sources

Each source URL points to an official government or court website.

{_numbered(case.get('source_urls'), 'No sources provided.')}

## 2. Verify Evidence Integrity

Each `evidence/<id>.meta.json` holds the SHA-256 of the original evidence.
Files included under `evidence/files/` can be checked directly:

```bash
sha256sum <filename>                          # Linux/Mac
Get-FileHash <filename> -Algorithm SHA256     # Windows PowerShell
```

## 3. Verify the Provenance Chain

In `provenance/audit-trail.json` every entry's `previous_hash` must equal the
prior entry's `current_hash`, and `current_hash` must be the SHA-256 of the
entry without that field.

## 4. Check the Bundle Hash

`manifest.json` lists the SHA-256 of every file. Concatenate them in order and
hash the result; it must equal `integrity.bundle_hash`.
"""

    def _readme(self, case: Dict[str, Any]) -> str:
        return f"""# Evidence Bundle: {case['title']}

## Contents

- `manifest.json` - Bundle metadata and integrity hashes
- `analysis/` - Case analysis (JSON) and human-readable report
- `evidence/` - Evidence metadata and files
- `provenance/` - Audit trail
- `targets/` - Target entity dossier (if applicable)
- `verification/` - Guide for independent verification

**Case ID:** {case['id']}
**Generated:** {utc_now_iso()}

## Legal Notice

{LEGAL_DISCLAIMER}

## Contact

- Website: {self.site_url}
- Alerts: {self.site_url}/alerts
"""


def write_bundle(bundle: EvidenceBundle, output_dir: Union[str, Path]) -> Path:
    """Write a bundle to ``output_dir`` atomically and return its path."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / bundle.filename
    temp_path = path.with_suffix(".zip.tmp")
    with open(temp_path, "wb") as f:
        f.write(bundle.content)
    os.replace(temp_path, path)
    return path
