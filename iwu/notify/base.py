"""Shared pieces of the outbound notification channels."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

# (connect, read) in seconds
NOTIFY_TIMEOUT = (10, 30)

# Only retry on responses that were never processed; a retried POST could double-post
_retry = Retry(total=1, allowed_methods=["POST"], backoff_factor=1, status_forcelist=[502, 503, 504])
_session = requests.Session()
_session.mount("https://", HTTPAdapter(max_retries=_retry))


class Notifier(ABC):
    """One delivery channel. ``send_summary`` never raises for delivery failures."""

    channel = "unknown"

    def __init__(self, session: Optional[requests.Session] = None, timeout=NOTIFY_TIMEOUT):
        self.session = session or _session
        self.timeout = timeout

    @abstractmethod
    def format_summary(self, summary: Dict[str, Any], site_url: str) -> Any:
        """Render the daily summary into this channel's payload."""
        pass

    @abstractmethod
    def send(self, payload: Any) -> bool:
        """Deliver a rendered payload. Returns True on success."""
        pass

    @abstractmethod
    def format_alert(self, alert: Dict[str, Any], site_url: str) -> Any:
        """Render a single alert into this channel's payload."""
        pass

    def send_summary(self, summary: Dict[str, Any], site_url: str) -> bool:
        return self.send(self.format_summary(summary, site_url))

    def send_alert(self, alert: Dict[str, Any], site_url: str) -> bool:
        return self.send(self.format_alert(alert, site_url))
