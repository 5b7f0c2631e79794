"""Tests for evidence bundle assembly."""

import hashlib
import io
import json
import zipfile

import pytest

from iwu.cases.evidence import EvidenceRepository
from iwu.cases.targets import TargetRepository
from iwu.cases.workflow import CaseRepository
from iwu.evidence.bundler import (
    BundleIntegrityError,
    EvidenceBundler,
    compute_bundle_hash,
    write_bundle,
)
from iwu.store.json_store import JsonStore
from iwu.store.provenance import ProvenanceLog


@pytest.fixture
def env(tmp_path):
    store = JsonStore(tmp_path / "data")
    provenance = ProvenanceLog(store)
    cases = CaseRepository(store, provenance)
    targets = TargetRepository(store, provenance)
    evidence_root = tmp_path / "evidence"
    evidence_root.mkdir()
    evidence = EvidenceRepository(store, provenance, cases, evidence_root)
    bundler = EvidenceBundler(cases, evidence, targets, provenance, evidence_root, site_url="https://example.org/")
    return {
        "cases": cases,
        "targets": targets,
        "evidence": evidence,
        "evidence_root": evidence_root,
        "bundler": bundler,
    }


@pytest.fixture
def published_case(env):
    cases = env["cases"]
    case = cases.create_case({
        "title": "Deeming practices",
        "category": "wsib",
        "severity": "critical",
        "source_urls": ["https://www.wsib.ca/en/policy"],
        "charter_violations": ["Section 15"],
        "target_entity": {"name": "WSIB"},
    })
    cases.submit(case["id"])
    cases.approve(case["id"], "reviewer")
    cases.publish(case["id"], "reviewer")
    return cases.get_case(case["id"])


def open_zip(bundle):
    return zipfile.ZipFile(io.BytesIO(bundle.content))


class TestCreateBundle:
    """Bundle layout and integrity manifest."""

    def test_layout(self, env, published_case):
        env["targets"].create_target({"name": "WSIB", "type": "agency"})
        (env["evidence_root"] / "letter.pdf").write_bytes(b"letter")
        item = env["evidence"].create_evidence({
            "case_id": published_case["id"],
            "file_name": "letter.pdf",
            "storage_path": "letter.pdf",
        })

        bundle = env["bundler"].create_bundle(published_case["id"])
        names = open_zip(bundle).namelist()

        assert names[-1] == "manifest.json"
        for expected in (
            "analysis/case-analysis.json",
            "analysis/case-report.md",
            f"evidence/{item['id']}.meta.json",
            f"evidence/files/{item['id']}-letter.pdf",
            "provenance/audit-trail.json",
            "targets/target-dossier.json",
            "verification/how-to-verify.md",
            "README.md",
        ):
            assert expected in names

    def test_no_dossier_without_known_target(self, env, published_case):
        bundle = env["bundler"].create_bundle(published_case["id"])
        assert "targets/target-dossier.json" not in open_zip(bundle).namelist()

    def test_manifest_hashes_match_contents(self, env, published_case):
        bundle = env["bundler"].create_bundle(published_case["id"])
        zf = open_zip(bundle)
        manifest = json.loads(zf.read("manifest.json"))

        entries = manifest["integrity"]["files"]
        for entry in entries:
            assert hashlib.sha256(zf.read(entry["path"])).hexdigest() == entry["sha256"]

        assert manifest["integrity"]["bundle_hash"] == compute_bundle_hash(entries)
        assert bundle.bundle_hash == manifest["integrity"]["bundle_hash"]
        assert manifest["sources"] == ["https://www.wsib.ca/en/policy"]

    def test_audit_trail_includes_workflow(self, env, published_case):
        zf = open_zip(env["bundler"].create_bundle(published_case["id"]))
        trail = json.loads(zf.read("provenance/audit-trail.json"))

        assert [e["action"] for e in trail["chain"]] == ["CREATED", "SUBMIT", "APPROVE", "PUBLISH"]
        assert trail["verification"]["valid"] is True
        assert len(trail["w3c_prov"]["@graph"]) == 4

    def test_filename(self, env, published_case):
        bundle = env["bundler"].create_bundle(published_case["id"])

        assert bundle.filename.startswith(f"IWU-Evidence-Bundle-{published_case['id'][:8]}-")
        assert bundle.filename.endswith(".zip")
        assert bundle.size == len(bundle.content)

    def test_missing_case(self, env):
        with pytest.raises(BundleIntegrityError):
            env["bundler"].create_bundle("nope")

    def test_missing_evidence_file(self, env, published_case):
        env["evidence"].create_evidence({
            "case_id": published_case["id"],
            "file_name": "gone.pdf",
            "storage_path": "gone.pdf",
        })

        with pytest.raises(BundleIntegrityError) as exc_info:
            env["bundler"].create_bundle(published_case["id"])
        assert "missing" in exc_info.value.message

    def test_write_bundle(self, env, published_case, tmp_path):
        bundle = env["bundler"].create_bundle(published_case["id"])
        path = write_bundle(bundle, tmp_path / "out")

        assert path.name == bundle.filename
        assert path.read_bytes() == bundle.content
