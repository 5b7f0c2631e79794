"""Disability benefit and accessibility pages (ODSP, CPP-D, WSIB mental stress, AODA)."""

import hashlib
import logging
import time
from typing import Any, Dict, List

from ..base_fetcher import SourceFetchError
from ..fetch_web import WebScraper, element_text
from ..records import SourceRecord

logger = logging.getLogger(__name__)

DEFAULT_SECTION_SELECTOR = "h2, h3, article"
DEFAULT_MIN_LENGTH = 20
MAX_SECTION_LENGTH = 500
MAX_SECTIONS = 10


def content_fingerprint(sections: List[str]) -> str:
    """Short stable digest of the extracted sections."""
    digest = hashlib.sha256(" ".join(sections).encode("utf-8")).hexdigest()
    return f"sha256:{digest[:16]}"


class DisabilityPagesScraper(WebScraper):
    """
    One record per monitored page.

    The record status is a fingerprint of the page's headline sections, so
    any content change surfaces as a status change. A page that fails is
    skipped and its baseline record kept; the source only fails when every
    page does.
    """

    identity_key = "source"

    def __init__(self, source_config: Dict[str, Any], **kwargs):
        super().__init__(source_config, **kwargs)
        self.pages: List[Dict[str, Any]] = list(source_config.get("pages", []))
        if not self.urls:
            self.urls = [page["url"] for page in self.pages]

    def keeps_baseline(self, record: SourceRecord) -> bool:
        return record.id in self.failed_parts

    def _fetch_impl(self) -> List[Dict[str, Any]]:
        results = []
        errors = []

        for i, page in enumerate(self.pages):
            if i > 0:
                time.sleep(self.request_delay)

            try:
                soup = self.fetch_page(page["url"])
            except SourceFetchError as e:
                logger.warning(f"{page['source']} check failed: {e.message}")
                errors.append(e)
                self.failed_parts.append(page["source"])
                continue

            min_length = page.get("min_length", DEFAULT_MIN_LENGTH)
            sections = []
            for elem in soup.select(page.get("selector", DEFAULT_SECTION_SELECTOR)):
                text = element_text(elem)
                if min_length < len(text) < MAX_SECTION_LENGTH:
                    sections.append(text)
            sections = sections[:MAX_SECTIONS]

            logger.info(f"{page['source']}: found {len(sections)} sections")
            results.append({
                "source": page["source"],
                "title": page.get("title", page["source"]),
                "status": content_fingerprint(sections),
                "url": page["url"],
                "updates": sections,
            })

        if self.pages and not results:
            raise SourceFetchError(self.source_id, f"All {len(errors)} pages failed", errors[-1] if errors else None)

        return results
