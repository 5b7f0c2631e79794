"""Post-hoc policy pass: every alert raised by a scan must link to its source."""

import logging
from typing import Any, Dict, List

from ..store.json_store import JsonStore
from .sink import ALERTS_KEY

logger = logging.getLogger(__name__)


def enforce_source_urls(store: JsonStore) -> List[Dict[str, Any]]:
    """
    Remove scan-originated alerts that carry no ``source_url``.

    Manually created alerts are left alone. The file is only rewritten when
    something was removed.

    Returns:
        The removed alerts
    """
    alerts = store.read_collection(ALERTS_KEY)
    kept, removed = [], []

    for alert in alerts:
        if alert.get("origin") == "scan" and not (alert.get("source_url") or "").strip():
            removed.append(alert)
            logger.info(f"Removing alert without source: {alert.get('id')} {alert.get('title', '')[:60]}")
        else:
            kept.append(alert)

    if removed:
        store.write(ALERTS_KEY, kept)

    logger.info(f"Alerts before: {len(alerts)}, after: {len(kept)}, removed: {len(removed)}")
    return removed
