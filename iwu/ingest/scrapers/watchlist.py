"""Configured watch lists (corporate filings, lobbyist registry).

Neither registry offers an open API, so these sources only snapshot the
entities under watch and point at the registry for manual review.
"""

import logging
from typing import Any, Dict, List

from ..base_fetcher import BaseScraper

logger = logging.getLogger(__name__)


class WatchlistScraper(BaseScraper):
    """Turns the configured ``entities`` into records; no network access."""

    identity_key = "name"

    def _fetch_impl(self) -> List[Dict[str, Any]]:
        registry_url = self.config.get("registry_url", self.default_url)
        entities = []

        for entity in self.config.get("entities", []):
            if isinstance(entity, str):
                entity = {"name": entity}
            entities.append({
                **entity,
                "title": entity.get("title", entity["name"]),
                "status": "watching",
                "url": entity.get("url", registry_url),
            })

        logger.info(f"Monitoring {len(entities)} entities; review {registry_url} manually")
        return entities
