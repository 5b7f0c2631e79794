"""
Credentials for the notification channels.

Usage:
    from iwu.config.secrets import get_telegram_credentials

    # Will raise if either value is missing
    bot_token, chat_id = get_telegram_credentials()

CLI check:
    python -m iwu.config.secrets --check
"""

import os
import sys
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv

_repo_root = Path(__file__).resolve().parent.parent.parent  # iwu/config/secrets.py -> repo root
_env_path = _repo_root / ".env"

if _env_path.exists():
    load_dotenv(_env_path)
else:
    load_dotenv()


class MissingCredentialError(Exception):
    """Raised when a notification channel is not configured."""
    pass


def _get(name: str, environ: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if environ is None else environ
    return (env.get(name) or "").strip()


def get_telegram_credentials(environ: Optional[Mapping[str, str]] = None) -> Tuple[str, str]:
    """
    Get the Telegram bot token and chat id.

    Raises:
        MissingCredentialError: If TELEGRAM_BOT_TOKEN or TELEGRAM_CHAT_ID is not set
    """
    token = _get("TELEGRAM_BOT_TOKEN", environ)
    chat_id = _get("TELEGRAM_CHAT_ID", environ)
    if not token or not chat_id:
        raise MissingCredentialError(
            "TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID must both be set. "
            "Copy .env.example to .env and fill them in."
        )
    return token, chat_id


def get_discord_webhook_url(environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Get the Discord webhook URL.

    Raises:
        MissingCredentialError: If DISCORD_WEBHOOK_URL is not set
    """
    url = _get("DISCORD_WEBHOOK_URL", environ)
    if not url:
        raise MissingCredentialError(
            "DISCORD_WEBHOOK_URL not found. "
            "Copy .env.example to .env and add your webhook URL."
        )
    return url


def check_credentials(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Status of each credential ("OK" or "MISSING")."""
    names = ["TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID", "DISCORD_WEBHOOK_URL"]
    return {name: "OK" if _get(name, environ) else "MISSING" for name in names}


def _cli_check():
    """CLI entry point for --check flag."""
    status = check_credentials()

    for key_name, key_status in status.items():
        print(f"{key_name}: {key_status}")

    if "MISSING" in status.values():
        print("\nMissing channels are skipped when summaries are sent.")
        sys.exit(1)

    print("\nAll channels configured.")
    sys.exit(0)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Check notification credentials")
    parser.add_argument("--check", action="store_true", help="Check if credentials are configured")
    args = parser.parse_args()

    if args.check:
        _cli_check()
    else:
        parser.print_help()
