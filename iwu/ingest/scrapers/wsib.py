"""WSIB operational policy manual."""

import logging
from typing import Any, Dict, List

from ..fetch_web import WebScraper, absolute_url, element_text

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 10


class WsibPolicyScraper(WebScraper):
    """
    Collects policy links from the operational policy manual.

    Policies have no stable number, so the link text is the identity.
    Removed policies matter here, which is why the source is configured
    with ``detect_removals: true``.
    """

    identity_key = "title"
    default_selectors = {
        "policy": '.policy-item, .policy-link, a[href*="policy"]',
    }

    def _fetch_impl(self) -> List[Dict[str, Any]]:
        policies = []

        for page_url, soup in self.iter_pages():
            for elem in soup.select(self.selectors["policy"]):
                title = element_text(elem)
                if len(title) <= MIN_TITLE_LENGTH:
                    continue
                policies.append({
                    "title": title,
                    "url": absolute_url(page_url, elem.get("href")) or page_url,
                })

        logger.info(f"Found {len(policies)} policy references")
        return policies
