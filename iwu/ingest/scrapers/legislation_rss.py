"""Parliament of Canada bill activity feed."""

import logging
from typing import Any, Dict, List

import feedparser
from bs4 import BeautifulSoup

from ..base_fetcher import BaseScraper, SourceFetchError
from ..fetch_web import get_text
from ..relevance import assess_relevance

logger = logging.getLogger(__name__)


class LegislationFeedScraper(BaseScraper):
    """
    Reads the LEGISinfo RSS feed and keeps items that mention at least one
    relevance keyword. Feed items are keyed by their link.
    """

    identity_key = "url"

    def _fetch_impl(self) -> List[Dict[str, Any]]:
        keywords = self.config.get("keywords", [])
        items = []
        total = 0

        for feed_url in self.urls:
            text = get_text(feed_url, self.source_id, session=self.session, timeout=self.timeout)
            feed = feedparser.parse(text)

            if feed.bozo and not feed.entries:
                raise SourceFetchError(self.source_id, f"Feed parse error: {feed.bozo_exception}")

            for entry in feed.entries:
                total += 1
                title = entry.get("title", "").strip()
                description = BeautifulSoup(entry.get("summary", ""), "html.parser").get_text(" ", strip=True)

                assessment = assess_relevance(f"{title} {description}", keywords)
                if assessment["relevance"] == "low":
                    continue

                items.append({
                    "url": entry.get("link", "").strip(),
                    "title": title,
                    "status": "",
                    "description": description,
                    "date": entry.get("published", ""),
                    "source": "parl.ca",
                    "jurisdiction": self.config.get("jurisdiction", "federal"),
                    "relevance": assessment["relevance"],
                    "matched_keywords": assessment["matched_keywords"],
                })

        logger.info(f"{len(items)} of {total} feed items are relevant")
        return items
