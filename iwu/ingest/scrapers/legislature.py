"""Ontario Legislative Assembly bill list."""

import logging
from typing import Any, Dict, List

from ..fetch_web import WebScraper, element_text

logger = logging.getLogger(__name__)


class OntarioBillsScraper(WebScraper):
    """Scrapes the bill listing at ola.org, one record per bill number."""

    identity_key = "number"
    default_selectors = {
        "row": ".views-row",
        "number": ".bill-number",
        "title": ".bill-title",
        "status": ".bill-status",
        "sponsor": ".bill-sponsor",
    }

    def _fetch_impl(self) -> List[Dict[str, Any]]:
        selectors = self.selectors
        bills = []

        for page_url, soup in self.iter_pages():
            for row in soup.select(selectors["row"]):
                number = element_text(row, selectors["number"])
                if not number:
                    continue
                bills.append({
                    "number": number,
                    "title": element_text(row, selectors["title"]),
                    "status": element_text(row, selectors["status"]),
                    "sponsor": element_text(row, selectors["sponsor"]),
                    "url": page_url,
                })

        logger.info(f"Found {len(bills)} Ontario bills")
        return bills
