"""
InjuredWorkersUnite monitoring core.

Scrapes Canadian government and legislative sources, diffs each snapshot
against the previous run, and turns relevant changes into alerts stored in
a directory of JSON files.

Modules:
    store - JSON file store, provenance chain, payload validation
    ingest - Scrapers, change detection, relevance scoring, monitor runs
    alerts - Capped alert list and the source-url cleanup pass
    cases - Case workflow, monitored targets, evidence records
    evidence - Zip evidence bundles with an integrity manifest
    search - In-memory search, filter, sort and pagination
    reports - System statistics and the daily summary
    notify - Telegram and Discord delivery
    api - REST surface (disabled in production)
    cli - Command-line entrypoints
"""

__version__ = "1.0.0"
