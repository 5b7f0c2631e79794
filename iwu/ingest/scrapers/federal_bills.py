"""House of Commons and Senate bills from LEGISinfo."""

import logging
import re
from typing import Any, Dict, List

from ..fetch_web import WebScraper, element_text

logger = logging.getLogger(__name__)

# Fallback when the listing markup changes: "C-123: Title" / "S-12 Title"
BILL_PATTERN = re.compile(r"(C-\d+|S-\d+)[:\s]+([^.\n]+)", re.IGNORECASE)
MAX_PATTERN_MATCHES = 50
MAX_TITLE_LENGTH = 200


class FederalBillsScraper(WebScraper):
    """Scrapes LEGISinfo, falling back to bill-number text patterns."""

    identity_key = "number"
    default_selectors = {
        "row": "tr.billRow, .bill-item, article",
        "number": ".bill-number, .billNumber",
        "title": ".bill-title, .billTitle, h3, h4",
        "status": ".status, .bill-status",
        "sponsor": ".sponsor, .mp-name",
    }

    def _fetch_impl(self) -> List[Dict[str, Any]]:
        selectors = self.selectors
        bills = []

        for page_url, soup in self.iter_pages():
            page_bills = []
            for row in soup.select(selectors["row"]):
                number = element_text(row, selectors["number"])
                title = element_text(row, selectors["title"])
                if number and title:
                    page_bills.append(self._bill(number, title, page_url,
                                                 element_text(row, selectors["status"]),
                                                 element_text(row, selectors["sponsor"])))

            if not page_bills:
                logger.info(f"Structured extraction found nothing on {page_url}, trying text patterns")
                page_bills = self._from_text(soup.get_text("\n"), page_url)

            bills.extend(page_bills)

        logger.info(f"Found {len(bills)} federal bills")
        return bills

    def _from_text(self, body_text: str, page_url: str) -> List[Dict[str, Any]]:
        bills = []
        for match in BILL_PATTERN.finditer(body_text):
            if len(bills) >= MAX_PATTERN_MATCHES:
                break
            title = match.group(2)[:MAX_TITLE_LENGTH].strip()
            bills.append(self._bill(match.group(1).upper(), title, page_url))
        return bills

    def _bill(self, number: str, title: str, page_url: str, status: str = "", sponsor: str = "") -> Dict[str, Any]:
        bill_url = self.config.get("bill_url")
        return {
            "number": number,
            "title": title,
            "status": status or "Unknown",
            "sponsor": sponsor or "Unknown",
            "level": "Federal",
            "url": bill_url.format(number=number.lower()) if bill_url else page_url,
        }
