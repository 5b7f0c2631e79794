"""Wiring of the store-backed components for one data directory."""

from dataclasses import dataclass

from .alerts.sink import AlertSink
from .cases.evidence import EvidenceRepository
from .cases.targets import TargetRepository
from .cases.workflow import CaseRepository
from .config.settings import Settings
from .evidence.bundler import EvidenceBundler
from .ingest.scans import ScanHistory
from .store.json_store import JsonStore
from .store.provenance import ProvenanceLog


@dataclass
class Services:
    settings: Settings
    store: JsonStore
    provenance: ProvenanceLog
    alerts: AlertSink
    scans: ScanHistory
    cases: CaseRepository
    targets: TargetRepository
    evidence: EvidenceRepository
    bundler: EvidenceBundler


def build_services(settings: Settings) -> Services:
    store = JsonStore(settings.data_dir)
    provenance = ProvenanceLog(store)
    cases = CaseRepository(store, provenance)
    targets = TargetRepository(store, provenance)
    evidence = EvidenceRepository(store, provenance, cases, settings.evidence_root)

    return Services(
        settings=settings,
        store=store,
        provenance=provenance,
        alerts=AlertSink(store, max_alerts=settings.max_alerts),
        scans=ScanHistory(store, max_scans=settings.max_scans),
        cases=cases,
        targets=targets,
        evidence=evidence,
        bundler=EvidenceBundler(cases, evidence, targets, provenance, settings.evidence_root, site_url=settings.site_url),
    )
