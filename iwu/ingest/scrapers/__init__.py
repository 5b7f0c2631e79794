"""Per-source scrapers. Each module exposes one BaseScraper subclass."""

from typing import Dict, Type

from ..base_fetcher import BaseScraper
from .disability import DisabilityPagesScraper
from .federal_bills import FederalBillsScraper
from .government_data import GovernmentDataScraper
from .legislation_rss import LegislationFeedScraper
from .legislature import OntarioBillsScraper
from .watchlist import WatchlistScraper
from .wsib import WsibPolicyScraper

# ``scraper`` field in config/sources.yaml -> implementation
SCRAPERS: Dict[str, Type[BaseScraper]] = {
    "legislature": OntarioBillsScraper,
    "federal_bills": FederalBillsScraper,
    "wsib": WsibPolicyScraper,
    "disability": DisabilityPagesScraper,
    "government_data": GovernmentDataScraper,
    "legislation_rss": LegislationFeedScraper,
    "watchlist": WatchlistScraper,
}


def get_scraper_class(name: str) -> Type[BaseScraper]:
    """
    Look up a scraper by its config name.

    Raises:
        KeyError: Unknown scraper name
    """
    try:
        return SCRAPERS[name]
    except KeyError:
        raise KeyError(f"Unknown scraper '{name}'. Available: {', '.join(sorted(SCRAPERS))}") from None
