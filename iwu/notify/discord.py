"""Discord delivery through an incoming webhook."""

import logging
from typing import Any, Dict, List, Mapping, Optional

import requests

from ..config.secrets import get_discord_webhook_url
from ..store.json_store import utc_now_iso
from .base import Notifier

logger = logging.getLogger(__name__)

EMBED_COLOR = 0x667EEA
BOT_USERNAME = "IWU Monitor"
FIELD_VALUE_LIMIT = 1024
DESCRIPTION_LIMIT = 300
TITLE_LIMIT = 256

SEVERITY_COLORS = {
    "critical": 0xFF0000,
    "high": 0xFF6600,
    "medium": 0xFFCC00,
    "warning": 0xFFCC00,
    "low": 0x00FF00,
}
DEFAULT_ALERT_COLOR = 0x808080


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit - 1] + "…"


def build_discord_embed(summary: Dict[str, Any], site_url: str) -> Dict[str, Any]:
    """Render a daily summary as a Discord embed."""
    site_url = site_url.rstrip("/")
    alerts = summary.get("alerts", {})
    severity = alerts.get("by_severity", {})
    cases = summary.get("cases", {})
    top = summary.get("top_alert")

    if top:
        description = f"Top alert: {top.get('title', '')}"
    elif alerts.get("new_today"):
        description = f"{alerts['new_today']} new alerts today."
    else:
        description = "No new alerts today."

    fields: List[Dict[str, Any]] = [
        {"name": "📅 Date", "value": summary.get("date", ""), "inline": True},
        {"name": "🚨 New Alerts", "value": str(alerts.get("new_today", 0)), "inline": True},
        {
            "name": "Severity",
            "value": f"Critical: {severity.get('critical', 0)} | High: {severity.get('high', 0)} | "
                     f"Medium: {severity.get('medium', 0)}",
            "inline": False,
        },
        {"name": "⚠️ Unacknowledged", "value": str(alerts.get("unacknowledged", 0)), "inline": True},
        {
            "name": "📋 Cases",
            "value": f"Draft {cases.get('draft', 0)} / Review {cases.get('underReview', 0)} / "
                     f"Published {cases.get('published', 0)}",
            "inline": True,
        },
    ]

    if top:
        fields.append({
            "name": "🔥 Top Alert",
            "value": _truncate(f"**{(top.get('severity') or 'alert').upper()}**: {top.get('title', '')}\n"
                               f"{top.get('source_url') or site_url + '/alerts'}", FIELD_VALUE_LIMIT),
            "inline": False,
        })

    sources = summary.get("sources_scanned") or []
    if sources:
        fields.append({
            "name": "📡 Sources Scanned",
            "value": _truncate("\n".join(f"• {s}" for s in sources), FIELD_VALUE_LIMIT),
            "inline": False,
        })

    fields.append({
        "name": "🔗 Quick Links",
        "value": f"[Check Alerts]({site_url}/alerts) • [Legislative Tracking]({site_url}/legislative-tracking)",
        "inline": False,
    })

    return {
        "title": "Daily Monitoring Summary",
        "description": _truncate(description, DESCRIPTION_LIMIT),
        "color": EMBED_COLOR,
        "timestamp": summary.get("generated_at") or utc_now_iso(),
        "thumbnail": {"url": f"{site_url}/logo.png"},
        "fields": fields,
        "footer": {"text": "Injured Workers Unite", "icon_url": f"{site_url}/logo.png"},
    }


def build_alert_embed(alert: Dict[str, Any], site_url: str) -> Dict[str, Any]:
    """Render one alert as a Discord embed."""
    site_url = site_url.rstrip("/")
    severity = alert.get("severity") or "info"

    fields: List[Dict[str, Any]] = [
        {"name": "Severity", "value": severity.upper(), "inline": True},
        {"name": "Category", "value": alert.get("category") or "general", "inline": True},
        {"name": "Scope", "value": alert.get("scope") or "unknown", "inline": True},
    ]
    if alert.get("source"):
        fields.append({"name": "Source", "value": _truncate(alert["source"], FIELD_VALUE_LIMIT), "inline": False})

    embed: Dict[str, Any] = {
        "title": _truncate(alert.get("title") or "Alert", TITLE_LIMIT),
        "description": _truncate(alert.get("message") or "", DESCRIPTION_LIMIT),
        "color": SEVERITY_COLORS.get(severity, DEFAULT_ALERT_COLOR),
        "timestamp": alert.get("created_at") or utc_now_iso(),
        "fields": fields,
        "footer": {"text": "Injured Workers Unite", "icon_url": f"{site_url}/logo.png"},
    }
    if alert.get("source_url"):
        embed["url"] = alert["source_url"]
    return embed


class DiscordNotifier(Notifier):
    """Posts embeds to one webhook."""

    channel = "discord"

    def __init__(self, webhook_url: str, avatar_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.webhook_url = webhook_url
        self.avatar_url = avatar_url

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **kwargs) -> "DiscordNotifier":
        """
        Raises:
            MissingCredentialError: If DISCORD_WEBHOOK_URL is not configured
        """
        return cls(get_discord_webhook_url(environ), **kwargs)

    def format_summary(self, summary: Dict[str, Any], site_url: str) -> Dict[str, Any]:
        return build_discord_embed(summary, site_url)

    def format_alert(self, alert: Dict[str, Any], site_url: str) -> Dict[str, Any]:
        return build_alert_embed(alert, site_url)

    def send(self, payload: Dict[str, Any]) -> bool:
        body: Dict[str, Any] = {"username": BOT_USERNAME, "embeds": [payload]}
        if self.avatar_url:
            body["avatar_url"] = self.avatar_url
        elif payload.get("thumbnail"):
            body["avatar_url"] = payload["thumbnail"]["url"]

        try:
            response = self.session.post(self.webhook_url, json=body, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            status = getattr(getattr(e, "response", None), "status_code", None)
            logger.error(f"Discord send error: {type(e).__name__} (status {status})")
            return False

        logger.info("Discord message sent")
        return True
