"""
Runtime settings for the monitoring jobs and the API.

Settings are resolved once at the entry point (``Settings.from_env``) and
passed down explicitly. Nothing below the CLI/API layer reads environment
variables.

Precedence: defaults < config/monitor.yaml < environment variables.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

DEFAULT_CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_DATA_DIR = Path("data")

# One alert cap for every writer of alerts.json
DEFAULT_MAX_ALERTS = 500
DEFAULT_MAX_SCANS = 100

DEFAULT_REQUEST_DELAY_SECONDS = 1.0
DEFAULT_REQUEST_TIMEOUT = (10, 30)
DEFAULT_MAX_ATTEMPTS = 1
DEFAULT_SITE_URL = "https://injuredworkersunite.pages.dev"


class ConfigError(Exception):
    """Raised when a configuration file is present but invalid."""
    pass


def load_yaml_config(path: Path) -> Dict[str, Any]:
    """
    Load a YAML config file.

    Returns:
        Config dict, or empty dict if the file does not exist

    Raises:
        ConfigError: If the file exists but is not a YAML mapping
    """
    if not path.exists():
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping, got {type(data).__name__}")
    return data


def load_sources_config(path: Path) -> List[Dict[str, Any]]:
    """
    Load source definitions from config/sources.yaml.

    Raises:
        ConfigError: If the file is missing or a source lacks id/scraper
    """
    if not path.exists():
        raise ConfigError(f"Sources config not found: {path}")

    sources = load_yaml_config(path).get("sources", [])
    for i, source in enumerate(sources):
        for required in ("id", "name", "scraper"):
            if required not in source:
                raise ConfigError(f"Source {i} missing required field: {required}")
    return sources


@dataclass(frozen=True)
class Settings:
    """Resolved runtime configuration."""
    data_dir: Path = DEFAULT_DATA_DIR
    config_dir: Path = DEFAULT_CONFIG_DIR
    evidence_dir: Optional[Path] = None
    max_alerts: int = DEFAULT_MAX_ALERTS
    max_scans: int = DEFAULT_MAX_SCANS
    request_delay_seconds: float = DEFAULT_REQUEST_DELAY_SECONDS
    request_timeout: Tuple[float, float] = DEFAULT_REQUEST_TIMEOUT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    environment: str = "development"
    site_url: str = DEFAULT_SITE_URL
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def sources_path(self) -> Path:
        return self.config_dir / "sources.yaml"

    @property
    def evidence_root(self) -> Path:
        return self.evidence_dir if self.evidence_dir is not None else self.data_dir / "evidence"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def with_overrides(self, **changes: Any) -> "Settings":
        return replace(self, **changes)

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any], base: Optional["Settings"] = None) -> "Settings":
        """Apply a monitor.yaml-shaped mapping over ``base`` (or the defaults)."""
        settings = base or cls()
        alerts_cfg = config.get("alerts", {}) or {}
        scans_cfg = config.get("scans", {}) or {}
        http_cfg = config.get("http", {}) or {}
        retry_cfg = config.get("retry", {}) or {}
        storage_cfg = config.get("storage", {}) or {}

        timeout = http_cfg.get("timeout", settings.request_timeout)
        if isinstance(timeout, (int, float)):
            timeout = (timeout, timeout)

        return replace(
            settings,
            data_dir=Path(storage_cfg.get("data_dir", settings.data_dir)),
            evidence_dir=Path(storage_cfg["evidence_dir"]) if storage_cfg.get("evidence_dir") else settings.evidence_dir,
            max_alerts=int(alerts_cfg.get("max_alerts", settings.max_alerts)),
            max_scans=int(scans_cfg.get("max_scans", settings.max_scans)),
            request_delay_seconds=float(http_cfg.get("request_delay_seconds", settings.request_delay_seconds)),
            request_timeout=tuple(timeout),
            max_attempts=max(1, int(retry_cfg.get("max_attempts", settings.max_attempts))),
            site_url=config.get("site_url", settings.site_url),
            extra={k: v for k, v in config.items() if k not in ("alerts", "scans", "http", "retry", "storage", "site_url")},
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Resolve settings for an entry point.

        Environment variables:
            IWU_CONFIG_DIR: Directory holding monitor.yaml and sources.yaml
            DATA_DIR: Data directory (overrides monitor.yaml)
            IWU_ENV / NODE_ENV: "production" disables the API
        """
        env = os.environ if environ is None else environ

        config_dir = Path(env.get("IWU_CONFIG_DIR", DEFAULT_CONFIG_DIR))
        settings = cls.from_mapping(
            load_yaml_config(config_dir / "monitor.yaml"),
            base=cls(config_dir=config_dir),
        )

        if env.get("DATA_DIR"):
            settings = replace(settings, data_dir=Path(env["DATA_DIR"]))

        environment = env.get("IWU_ENV") or env.get("NODE_ENV")
        if environment:
            settings = replace(settings, environment=environment)

        logger.debug(f"Resolved settings: data_dir={settings.data_dir} environment={settings.environment}")
        return settings
