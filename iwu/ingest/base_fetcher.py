"""Abstract base class for all source scrapers."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from ..config.settings import DEFAULT_MAX_ATTEMPTS, DEFAULT_REQUEST_DELAY_SECONDS, DEFAULT_REQUEST_TIMEOUT
from .records import SourceRecord, build_records

logger = logging.getLogger(__name__)

# Wait before a repeated attempt (only when retry.max_attempts > 1)
RETRY_BACKOFF_SECONDS = 2


class SourceFetchError(Exception):
    """Exception raised when a source cannot be fetched or parsed."""
    def __init__(self, source_id: str, message: str, original_error: Optional[Exception] = None):
        self.source_id = source_id
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_id}: {message}")


class BaseScraper(ABC):
    """
    Base for all scrapers.

    Subclasses set ``identity_key`` (the raw field that identifies an item
    within the source) and implement ``_fetch_impl``.

    Scrapers that tolerate a failing page or query record it in
    ``failed_parts`` and override ``keeps_baseline`` so the monitor can keep
    the baseline records that run could not see.
    """

    identity_key = "id"

    def __init__(
        self,
        source_config: Dict[str, Any],
        session=None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        request_delay: float = DEFAULT_REQUEST_DELAY_SECONDS,
        timeout: Tuple[float, float] = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.source_id = source_config["id"]
        self.name = source_config["name"]
        self.config = source_config
        self.urls: List[str] = list(source_config.get("urls", []))
        self.session = session
        self.max_attempts = max(1, max_attempts)
        self.request_delay = request_delay
        self.timeout = timeout
        self.failed_parts: List[str] = []

    @property
    def default_url(self) -> str:
        return self.urls[0] if self.urls else ""

    def keeps_baseline(self, record: SourceRecord) -> bool:
        """Whether a baseline record missing from this run belongs to a failed part."""
        return False

    @abstractmethod
    def _fetch_impl(self) -> List[Dict[str, Any]]:
        """
        Internal fetch implementation - to be overridden by subclasses.

        Returns:
            Raw item dicts, each carrying ``identity_key`` and ideally
            ``title``, ``status`` and ``url``

        Raises:
            SourceFetchError on fetch failure
        """
        pass

    def fetch(self) -> Tuple[List[SourceRecord], Optional[str]]:
        """
        Fetch and normalise one snapshot of the source.

        Failures are logged and returned, never raised, so one broken
        source cannot stop the others.

        Returns:
            Tuple of (records, error_message)
            - On success: (records, None)
            - On failure: ([], error_message)
        """
        last_error = None

        for attempt in range(1, self.max_attempts + 1):
            self.failed_parts = []
            try:
                raw_items = self._fetch_impl()
                records = build_records(raw_items, self.identity_key, default_url=self.default_url)
                logger.info(f"{self.source_id}: fetched {len(raw_items)} items, {len(records)} valid records")
                return records, None
            except Exception as e:
                last_error = str(e) or repr(e)
                if attempt < self.max_attempts:
                    logger.warning(f"Retry {attempt}/{self.max_attempts} for {self.source_id} in {RETRY_BACKOFF_SECONDS}s: {last_error}")
                    time.sleep(RETRY_BACKOFF_SECONDS)
                else:
                    logger.error(f"Fetch failed for {self.source_id} after {attempt} attempt(s): {last_error}")

        return [], last_error
