"""Telegram delivery via the Bot API ``sendMessage`` method (MarkdownV2)."""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional

import requests

from ..alerts.sink import SEVERITY_EMOJI
from ..config.secrets import get_telegram_credentials
from .base import Notifier

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"

_MARKDOWN_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")
_DIVIDER = "━━━━━━━━━━━━━━━━━━━━"


def escape_markdown(text: Any) -> str:
    """Escape every MarkdownV2 control character."""
    if text is None or text == "":
        return ""
    return _MARKDOWN_SPECIAL.sub(r"\\\1", str(text))


def _link(label: str, url: str) -> str:
    # inside the URL part only ")" and "\" need escaping
    safe_url = url.replace("\\", "\\\\").replace(")", "\\)")
    return f"[{escape_markdown(label)}]({safe_url})"


def _bold(text: str) -> str:
    return f"*{escape_markdown(text)}*"


def format_telegram_summary(summary: Dict[str, Any], site_url: str) -> str:
    """Render a daily summary as a MarkdownV2 message."""
    site_url = site_url.rstrip("/")
    alerts = summary.get("alerts", {})
    severity = alerts.get("by_severity", {})
    cases = summary.get("cases", {})
    targets = summary.get("targets", {})

    lines: List[str] = [
        f"📊 {_bold('DAILY MONITORING SUMMARY')}",
        f"📅 {escape_markdown(summary.get('date'))}",
        "",
        _DIVIDER,
        "",
        f"📈 {_bold('New Alerts Today:')} {alerts.get('new_today', 0)}",
        f"🚨 {_bold('Critical:')} {severity.get('critical', 0)}",
        f"🔴 {_bold('High:')} {severity.get('high', 0)}",
        f"🟠 {_bold('Medium:')} {severity.get('medium', 0)}",
        "",
        f"⚠️ {_bold('Unacknowledged:')} {alerts.get('unacknowledged', 0)}",
        "",
        f"📋 {_bold('Cases:')}",
        f"• Draft: {cases.get('draft', 0)}",
        f"• Under Review: {cases.get('underReview', 0)}",
        f"• Published: {cases.get('published', 0)}",
        "",
        f"🎯 {_bold('Targets Monitored:')} {targets.get('total', 0)}",
        f"   Critical: {targets.get('critical', 0)}",
        "",
        f"📡 {_bold('Sources Scanned:')}",
    ]
    lines.extend(f"• {escape_markdown(source)}" for source in summary.get("sources_scanned", []))
    lines.extend(["", _DIVIDER])

    top = summary.get("top_alert")
    if top:
        lines.extend([
            "",
            f"🔥 {_bold('Top Alert:')}",
            escape_markdown(top.get("title")),
            _link("View Source", top.get("source_url") or f"{site_url}/alerts"),
        ])

    lines.extend([
        "",
        f"🔗 {_link('View Alerts', f'{site_url}/alerts')}",
        f"🔗 {_link('Admin Panel', f'{site_url}/admin')}",
    ])
    return "\n".join(lines)


def format_telegram_alert(alert: Dict[str, Any], site_url: str) -> str:
    """Render one alert as a MarkdownV2 message."""
    site_url = site_url.rstrip("/")
    severity = alert.get("severity") or "info"

    lines: List[str] = [
        f"{SEVERITY_EMOJI.get(severity, '⚪')} {_bold(alert.get('title') or 'Alert')}",
        "",
    ]
    if alert.get("message"):
        lines.extend([escape_markdown(alert["message"]), ""])

    lines.extend([
        f"📍 {_bold('Scope:')} {escape_markdown(alert.get('scope') or 'unknown')}",
        f"🏷️ {_bold('Category:')} {escape_markdown(alert.get('category') or 'general')}",
        f"⚡ {_bold('Severity:')} {escape_markdown(severity.upper())}",
    ])
    if alert.get("source_url"):
        lines.extend(["", f"🔗 {_link('View Source', alert['source_url'])}"])
    if alert.get("source"):
        lines.append(f"📰 Source: {escape_markdown(alert['source'])}")

    lines.extend(["", f"🌐 {_link('View on IWU', f'{site_url}/alerts')}"])
    return "\n".join(lines)


class TelegramNotifier(Notifier):
    """Posts messages to one chat through a bot."""

    channel = "telegram"

    def __init__(self, bot_token: str, chat_id: str, disable_web_page_preview: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.disable_web_page_preview = disable_web_page_preview

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **kwargs) -> "TelegramNotifier":
        """
        Raises:
            MissingCredentialError: If the token or chat id is not configured
        """
        token, chat_id = get_telegram_credentials(environ)
        return cls(token, chat_id, **kwargs)

    def format_summary(self, summary: Dict[str, Any], site_url: str) -> str:
        return format_telegram_summary(summary, site_url)

    def format_alert(self, alert: Dict[str, Any], site_url: str) -> str:
        return format_telegram_alert(alert, site_url)

    def send(self, payload: str) -> bool:
        url = TELEGRAM_API_URL.format(token=self.bot_token)
        try:
            response = self.session.post(url, json={
                "chat_id": self.chat_id,
                "text": payload,
                "parse_mode": "MarkdownV2",
                "disable_web_page_preview": self.disable_web_page_preview,
            }, timeout=self.timeout)
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            # the URL carries the bot token; keep it out of the log
            logger.error(f"Telegram send error: {type(e).__name__}")
            return False

        if not result.get("ok"):
            logger.error(f"Telegram API error: {result.get('description', 'unknown error')}")
            return False

        logger.info("Telegram message sent")
        return True
