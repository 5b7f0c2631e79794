"""HTTP access shared by every scraper, plus the CSS-selector page scraper base."""

import logging
import time
from typing import Any, Dict, Iterator, Optional, Tuple
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base_fetcher import BaseScraper, SourceFetchError

logger = logging.getLogger(__name__)

# Request timeout (connect, read) in seconds
REQUEST_TIMEOUT = (10, 30)

# Session-level retry for network transients
_retry = Retry(total=1, allowed_methods=["GET"], backoff_factor=1, status_forcelist=[502, 503, 504])
_session = requests.Session()
_session.mount("https://", HTTPAdapter(max_retries=_retry))
_session.mount("http://", HTTPAdapter(max_retries=_retry))

# Browser-like headers; several government sites reject the default UA
DEFAULT_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'en-CA,en;q=0.9',
    'Accept-Encoding': 'gzip, deflate',
    'Connection': 'keep-alive',
}

JSON_HEADERS = {
    **DEFAULT_HEADERS,
    'Accept': 'application/json',
}


def get_response(
    url: str,
    source_id: str,
    session: Optional[requests.Session] = None,
    timeout: Tuple[float, float] = REQUEST_TIMEOUT,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> requests.Response:
    """
    GET ``url`` and check the status.

    Raises:
        SourceFetchError: On connection errors, timeouts and non-2xx responses
    """
    http = session or _session
    try:
        response = http.get(url, params=params, timeout=timeout, headers=headers or DEFAULT_HEADERS)
        response.raise_for_status()
    except requests.RequestException as e:
        raise SourceFetchError(source_id, f"Request failed for {url}: {e}", e) from e
    return response


def get_html(url: str, source_id: str, **kwargs) -> BeautifulSoup:
    """Fetch a page and parse it with lxml."""
    response = get_response(url, source_id, **kwargs)
    return BeautifulSoup(response.text, 'lxml')


def get_text(url: str, source_id: str, **kwargs) -> str:
    return get_response(url, source_id, **kwargs).text


def get_json(url: str, source_id: str, **kwargs) -> Any:
    """
    Fetch and decode a JSON API response.

    Raises:
        SourceFetchError: On request failure or a body that is not JSON
    """
    kwargs.setdefault("headers", JSON_HEADERS)
    response = get_response(url, source_id, **kwargs)
    try:
        return response.json()
    except ValueError as e:
        raise SourceFetchError(source_id, f"Invalid JSON from {url}: {e}", e) from e


def element_text(element, selector: Optional[str] = None) -> str:
    """Whitespace-normalised text of ``element`` or of its first ``selector`` match."""
    if element is None:
        return ""
    if selector:
        element = element.select_one(selector)
        if element is None:
            return ""
    return " ".join(element.get_text(" ", strip=True).split())


def absolute_url(page_url: str, href: Optional[str]) -> str:
    if not href:
        return ""
    return urljoin(page_url, href)


class WebScraper(BaseScraper):
    """Base for scrapers that read HTML pages with CSS selectors."""

    # Selector defaults; config/sources.yaml may override any of them
    default_selectors: Dict[str, str] = {}

    @property
    def selectors(self) -> Dict[str, str]:
        return {**self.default_selectors, **self.config.get("selectors", {})}

    def fetch_page(self, url: str) -> BeautifulSoup:
        return get_html(url, self.source_id, session=self.session, timeout=self.timeout)

    def iter_pages(self) -> Iterator[Tuple[str, BeautifulSoup]]:
        """Yield (url, soup) for each configured URL, pausing between requests."""
        for i, page_url in enumerate(self.urls):
            # Add delay between requests to avoid rate limiting
            if i > 0:
                time.sleep(self.request_delay)
            yield page_url, self.fetch_page(page_url)
