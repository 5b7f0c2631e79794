"""Fan alerts and the daily summary out to every configured channel."""

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ..alerts.sink import AlertSink
from ..config.secrets import MissingCredentialError
from .base import Notifier
from .discord import DiscordNotifier
from .telegram import TelegramNotifier

logger = logging.getLogger(__name__)

CHANNELS = {
    "telegram": TelegramNotifier,
    "discord": DiscordNotifier,
}

# warning and info sit alongside medium and low
SEVERITY_RANK = {
    "info": 0,
    "low": 0,
    "warning": 1,
    "medium": 1,
    "high": 2,
    "critical": 3,
}
THRESHOLDS = ("low", "medium", "high", "critical")
DISPATCH_DELAY_SECONDS = 0.5


def build_notifiers(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Optional[Notifier]]:
    """Notifier per channel, or None where credentials are missing."""
    notifiers: Dict[str, Optional[Notifier]] = {}
    for channel, notifier_cls in CHANNELS.items():
        try:
            notifiers[channel] = notifier_cls.from_env(environ)
        except MissingCredentialError as e:
            logger.warning(f"{channel} not configured, skipping: {e}")
            notifiers[channel] = None
    return notifiers


def meets_threshold(severity: Optional[str], threshold: str) -> bool:
    """
    Raises:
        ValueError: If ``threshold`` is not a known severity
    """
    if threshold not in SEVERITY_RANK:
        raise ValueError(f"Unknown severity threshold: {threshold}")
    return SEVERITY_RANK.get(severity or "", 0) >= SEVERITY_RANK[threshold]


def _deliver(channel: str, send: Callable[[], bool]) -> bool:
    try:
        return bool(send())
    except Exception as e:
        logger.error(f"{channel} delivery failed: {type(e).__name__}: {e}")
        return False


def send_daily_summary(
    summary: Dict[str, Any],
    notifiers: Mapping[str, Optional[Notifier]],
    site_url: str,
    sink: Optional[AlertSink] = None,
) -> Dict[str, bool]:
    """
    Send ``summary`` on every configured channel.

    A failing channel, including one that raises while rendering, does not
    stop the others. When ``sink`` is given, the top alert is marked
    delivered on each channel that succeeded.

    Returns:
        {channel: delivered} for every configured channel
    """
    results: Dict[str, bool] = {}
    top_alert = summary.get("top_alert") or {}

    for channel, notifier in notifiers.items():
        if notifier is None:
            logger.warning(f"Skipping {channel}: not configured")
            continue

        results[channel] = _deliver(channel, lambda: notifier.send_summary(summary, site_url))

        if results[channel] and sink is not None and top_alert.get("id"):
            sink.mark_delivered(top_alert["id"], channel)

    sent = [c for c, ok in results.items() if ok]
    logger.info(f"Summary delivered via {', '.join(sent) or 'no channel'}")
    return results


def dispatch_alert(
    alert: Dict[str, Any],
    notifiers: Mapping[str, Optional[Notifier]],
    site_url: str,
    threshold: str = "low",
    sink: Optional[AlertSink] = None,
) -> Dict[str, Any]:
    """
    Send one alert on every configured channel.

    Alerts below ``threshold`` are skipped. The alert counts as delivered
    when any channel succeeds; each succeeding channel is recorded through
    ``sink.mark_delivered`` when a sink is given.

    Returns:
        {"alert_id", "channels": {channel: delivered}, "success", "skipped"}
        plus "reason" when skipped

    Raises:
        ValueError: If ``threshold`` is not a known severity
    """
    result: Dict[str, Any] = {
        "alert_id": alert.get("id"),
        "channels": {},
        "success": False,
        "skipped": False,
    }

    if not meets_threshold(alert.get("severity"), threshold):
        result["skipped"] = True
        result["reason"] = f"severity {alert.get('severity')} below threshold {threshold}"
        logger.debug(f"Skipping alert {alert.get('id')}: {result['reason']}")
        return result

    for channel, notifier in notifiers.items():
        if notifier is None:
            continue
        delivered = _deliver(channel, lambda: notifier.send_alert(alert, site_url))
        result["channels"][channel] = delivered
        if delivered and sink is not None and alert.get("id"):
            sink.mark_delivered(alert["id"], channel)

    result["success"] = any(result["channels"].values())
    if not result["channels"]:
        result["reason"] = "no channel configured"
    return result


def dispatch_batch(
    alerts: Iterable[Dict[str, Any]],
    notifiers: Mapping[str, Optional[Notifier]],
    site_url: str,
    threshold: str = "low",
    sink: Optional[AlertSink] = None,
    delay_seconds: float = DISPATCH_DELAY_SECONDS,
) -> Dict[str, Any]:
    """
    Dispatch ``alerts`` in order, pausing ``delay_seconds`` between sends.

    Returns:
        {"total", "dispatched", "failed", "skipped", "results"}
    """
    results: List[Dict[str, Any]] = []
    sent_any = False

    for alert in alerts:
        if sent_any and delay_seconds > 0 and meets_threshold(alert.get("severity"), threshold):
            time.sleep(delay_seconds)
        outcome = dispatch_alert(alert, notifiers, site_url, threshold=threshold, sink=sink)
        if not outcome["skipped"]:
            sent_any = True
        results.append(outcome)

    batch = {
        "total": len(results),
        "dispatched": sum(1 for r in results if r["success"]),
        "failed": sum(1 for r in results if not r["skipped"] and not r["success"]),
        "skipped": sum(1 for r in results if r["skipped"]),
        "results": results,
    }
    logger.info(
        f"Alert batch: {batch['dispatched']} dispatched, {batch['failed']} failed, "
        f"{batch['skipped']} skipped of {batch['total']}"
    )
    return batch
