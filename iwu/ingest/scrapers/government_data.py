"""Open-data catalogue search (CKAN ``package_search``) on federal and Ontario portals."""

import logging
import time
from typing import Any, Dict, List

from ..base_fetcher import BaseScraper, SourceFetchError
from ..fetch_web import get_json
from ..records import SourceRecord

logger = logging.getLogger(__name__)

DEFAULT_ROWS = 20
DEFAULT_QUERY_DELAY_SECONDS = 0.5
MAX_DESCRIPTION_LENGTH = 1000


class GovernmentDataScraper(BaseScraper):
    """
    Searches each configured CKAN portal for each topic.

    Datasets are keyed by their CKAN id; ``metadata_modified`` is the status,
    so an updated dataset shows up as a status change. A failing query is
    skipped and its portal recorded in ``failed_parts``; the source fails
    only when no query succeeds.
    """

    identity_key = "id"

    def __init__(self, source_config: Dict[str, Any], **kwargs):
        super().__init__(source_config, **kwargs)
        self.portals: List[Dict[str, Any]] = list(source_config.get("portals", []))
        self.topics: List[str] = list(source_config.get("topics", []))
        self.query_delay = source_config.get("query_delay_seconds", DEFAULT_QUERY_DELAY_SECONDS)
        if not self.urls:
            self.urls = [portal["api_url"] for portal in self.portals]

    def search_portal(self, portal: Dict[str, Any], query: str) -> List[Dict[str, Any]]:
        """
        Run one ``package_search`` query.

        Raises:
            SourceFetchError: If the request fails
        """
        params = {"q": query, "rows": portal.get("rows", DEFAULT_ROWS), **portal.get("params", {})}
        data = get_json(portal["api_url"], self.source_id, params=params, session=self.session, timeout=self.timeout)

        if not isinstance(data, dict) or not data.get("success"):
            return []

        datasets = []
        for dataset in (data.get("result") or {}).get("results", []):
            organization = dataset.get("organization") or {}
            datasets.append({
                "id": dataset.get("id"),
                "title": dataset.get("title"),
                "status": dataset.get("metadata_modified") or "",
                "description": (dataset.get("notes") or "")[:MAX_DESCRIPTION_LENGTH],
                "organization": organization.get("title") or portal.get("default_organization", "Unknown"),
                "tags": [t.get("name") for t in dataset.get("tags") or [] if t.get("name")],
                "portal": portal["name"],
                "jurisdiction": portal.get("jurisdiction", ""),
                "url": portal["dataset_url"].format(id=dataset.get("id")),
            })
        return datasets

    def keeps_baseline(self, record: SourceRecord) -> bool:
        # topic membership is not stored, so a failed query keeps the whole portal
        return record.details.get("portal") in self.failed_parts

    def _fetch_impl(self) -> List[Dict[str, Any]]:
        datasets = []
        seen = set()
        queries = 0
        failures = 0

        for portal in self.portals:
            topics = self.topics[:portal["max_topics"]] if portal.get("max_topics") else self.topics
            for topic in topics:
                if queries > 0:
                    time.sleep(self.query_delay)
                queries += 1

                try:
                    results = self.search_portal(portal, topic)
                except SourceFetchError as e:
                    failures += 1
                    if portal["name"] not in self.failed_parts:
                        self.failed_parts.append(portal["name"])
                    logger.warning(f"Search for '{topic}' on {portal['name']} failed: {e.message}")
                    continue

                for dataset in results:
                    if dataset["id"] and dataset["id"] not in seen:
                        seen.add(dataset["id"])
                        datasets.append(dataset)

        if queries and failures == queries:
            raise SourceFetchError(self.source_id, f"All {queries} catalogue queries failed")

        logger.info(f"Found {len(datasets)} unique datasets across {len(self.portals)} portals")
        return datasets
