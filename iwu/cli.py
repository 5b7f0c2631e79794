"""
Command-line interface for the monitoring jobs.

Provides subcommands for running source monitors, building the daily
summary, sending it and pending alerts to the notification channels,
enforcing the alert source-url policy, exporting evidence bundles and
serving the API.

Each scheduled job also has a flag-less console script (``iwu-monitor-wsib``,
``iwu-daily-summary``, ...) so cron and CI workflows can call it directly.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, Optional

from .alerts.cleanup import enforce_source_urls
from .alerts.sink import AlertSink
from .config.settings import ConfigError, Settings, load_sources_config
from .evidence.bundler import BundleIntegrityError, write_bundle
from .ingest.coordinator import MonitorCoordinator
from .logging_config import configure_logging
from .notify.base import Notifier
from .notify.dispatcher import (
    CHANNELS,
    DISPATCH_DELAY_SECONDS,
    THRESHOLDS,
    build_notifiers,
    dispatch_batch,
    meets_threshold,
    send_daily_summary,
)
from .reports.stats import get_system_stats
from .reports.summary import generate_daily_summary, load_daily_summary
from .services import build_services
from .store.json_store import JsonStore, PersistError

logger = logging.getLogger(__name__)


def _settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    if getattr(args, "data_dir", None):
        settings = settings.with_overrides(data_dir=Path(args.data_dir))
    return settings


def cmd_monitor(args: argparse.Namespace) -> int:
    """Run one source monitor."""
    try:
        coordinator = MonitorCoordinator(_settings(args))
        result = coordinator.run_source(args.source)

        if result.ok:
            baseline = " (baseline established)" if result.baseline_created else ""
            print(f"{args.source}: {result.items_found} items, {result.changes} changes, "
                  f"{result.alerts_created} alerts{baseline}")
            return 0

        print(f"{args.source}: failed - {result.error}", file=sys.stderr)
        return 1

    except (ConfigError, PersistError) as e:
        logger.error(f"Monitor {args.source} aborted: {e}")
        return 1


def cmd_monitor_all(args: argparse.Namespace) -> int:
    """Run every enabled source monitor."""
    try:
        coordinator = MonitorCoordinator(_settings(args))
        summary = coordinator.run(args.sources or None)

        print(f"Sources: {summary['sources_succeeded']}/{summary['sources_attempted']} succeeded, "
              f"{summary['alerts_created']} alerts created")
        for source_id, error in summary["errors"].items():
            print(f"  {source_id}: {error}")

        return 0 if summary["sources_failed"] == 0 else 1

    except (ConfigError, PersistError) as e:
        logger.error(f"Monitoring run aborted: {e}")
        return 1


def cmd_summary(args: argparse.Namespace) -> int:
    """Generate the daily summary."""
    try:
        settings = _settings(args)
        try:
            labels = [s["name"] for s in load_sources_config(settings.sources_path)]
        except ConfigError as e:
            logger.warning(f"Source labels unavailable: {e}")
            labels = []

        summary = generate_daily_summary(JsonStore(settings.data_dir), source_labels=labels)

        if args.json:
            print(json.dumps(summary, indent=2))
        else:
            alerts = summary["alerts"]
            print(f"Summary {summary['date']}: {alerts['new_today']} new alerts, "
                  f"{alerts['by_severity']['critical']} critical, {alerts['unacknowledged']} unacknowledged")
        return 0

    except PersistError as e:
        logger.error(f"Could not write daily summary: {e}")
        return 1


def _select_notifiers(channel: str) -> Optional[Dict[str, Optional[Notifier]]]:
    """Notifiers for ``channel`` ("all" for every one), or None if it is not configured."""
    notifiers = build_notifiers()
    if channel == "all":
        return notifiers
    if notifiers.get(channel) is None:
        print(f"{channel} is not configured", file=sys.stderr)
        return None
    return {channel: notifiers[channel]}


def cmd_notify(args: argparse.Namespace) -> int:
    """Send the latest daily summary to one or all channels."""
    try:
        settings = _settings(args)
        store = JsonStore(settings.data_dir)

        summary = load_daily_summary(store)
        if summary is None:
            logger.info("No daily summary found, generating one")
            summary = generate_daily_summary(store)

        notifiers = _select_notifiers(args.channel)
        if notifiers is None:
            return 1

        results = send_daily_summary(summary, notifiers, settings.site_url,
                                     sink=AlertSink(store, max_alerts=settings.max_alerts))
        for channel, ok in results.items():
            print(f"{channel}: {'sent' if ok else 'FAILED'}")

        return 0 if results and all(results.values()) else 1

    except PersistError as e:
        logger.error(f"Notification run aborted: {e}")
        return 1


def cmd_notify_alerts(args: argparse.Namespace) -> int:
    """Send undelivered, unacknowledged alerts at or above the threshold."""
    try:
        settings = _settings(args)
        sink = AlertSink(JsonStore(settings.data_dir), max_alerts=settings.max_alerts)

        notifiers = _select_notifiers(args.channel)
        if notifiers is None:
            return 1
        if not any(notifiers.values()):
            print("No notification channel is configured", file=sys.stderr)
            return 1

        pending = [
            alert for alert in sink.get_alerts(acknowledged=False)
            if not alert.get("delivered_via") and meets_threshold(alert.get("severity"), args.threshold)
        ][:args.limit]
        if not pending:
            print(f"No pending alerts at {args.threshold} or above")
            return 0

        # oldest first
        batch = dispatch_batch(reversed(pending), notifiers, settings.site_url,
                               threshold=args.threshold, sink=sink, delay_seconds=args.delay)
        print(f"{batch['dispatched']}/{batch['total']} alerts dispatched, {batch['failed']} failed")
        if args.verbose:
            for outcome in batch["results"]:
                channels = ", ".join(f"{c}={'ok' if ok else 'FAILED'}" for c, ok in outcome["channels"].items())
                print(f"  {outcome['alert_id']}: {channels}")

        return 0 if batch["failed"] == 0 else 1

    except PersistError as e:
        logger.error(f"Alert dispatch aborted: {e}")
        return 1


def cmd_cleanup(args: argparse.Namespace) -> int:
    """Remove scan alerts that have no source URL."""
    try:
        removed = enforce_source_urls(JsonStore(_settings(args).data_dir))
        print(f"Removed {len(removed)} alert(s) without a source URL")
        if args.verbose:
            for alert in removed:
                print(f"  {alert.get('id')}: {alert.get('title')}")
        return 0

    except PersistError as e:
        logger.error(f"Cleanup aborted: {e}")
        return 1


def cmd_bundle(args: argparse.Namespace) -> int:
    """Export the evidence bundle of a case."""
    try:
        services = build_services(_settings(args))
        bundle = services.bundler.create_bundle(args.case_id)
        path = write_bundle(bundle, args.output)
        print(f"Wrote {path} ({bundle.size} bytes, hash {bundle.bundle_hash})")
        return 0

    except BundleIntegrityError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        logger.error(f"Could not write bundle: {e}")
        return 1


def cmd_stats(args: argparse.Namespace) -> int:
    """Print system statistics."""
    stats = get_system_stats(JsonStore(_settings(args).data_dir))
    print(json.dumps(stats, indent=2))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the development API."""
    import uvicorn

    uvicorn.run("iwu.api.server:create_app", factory=True, host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="iwu",
        description="InjuredWorkersUnite monitoring jobs"
    )

    # Global options
    parser.add_argument(
        "--data-dir",
        help="Data directory (default: DATA_DIR or config/monitor.yaml)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    monitor_parser = subparsers.add_parser("monitor", help="Run one source monitor")
    monitor_parser.add_argument("source", help="Source id from config/sources.yaml")
    monitor_parser.set_defaults(func=cmd_monitor)

    monitor_all_parser = subparsers.add_parser("monitor-all", help="Run all enabled source monitors")
    monitor_all_parser.add_argument("--sources", nargs="*", help="Only these source ids")
    monitor_all_parser.set_defaults(func=cmd_monitor_all)

    summary_parser = subparsers.add_parser("summary", help="Generate the daily summary")
    summary_parser.add_argument("--json", action="store_true", help="Print the full summary as JSON")
    summary_parser.set_defaults(func=cmd_summary)

    notify_parser = subparsers.add_parser("notify", help="Send the daily summary")
    notify_parser.add_argument("channel", nargs="?", default="all", choices=[*CHANNELS, "all"])
    notify_parser.set_defaults(func=cmd_notify)

    alerts_parser = subparsers.add_parser("notify-alerts", help="Send pending alerts")
    alerts_parser.add_argument("channel", nargs="?", default="all", choices=[*CHANNELS, "all"])
    alerts_parser.add_argument("--threshold", default="high", choices=THRESHOLDS,
                               help="Lowest severity to send (default: high)")
    alerts_parser.add_argument("--limit", type=int, default=20, help="Most alerts to send in one run")
    alerts_parser.add_argument("--delay", type=float, default=DISPATCH_DELAY_SECONDS,
                               help="Seconds between alerts")
    alerts_parser.set_defaults(func=cmd_notify_alerts)

    cleanup_parser = subparsers.add_parser("cleanup", help="Remove scan alerts without a source URL")
    cleanup_parser.set_defaults(func=cmd_cleanup)

    bundle_parser = subparsers.add_parser("bundle", help="Export a case evidence bundle")
    bundle_parser.add_argument("case_id", help="Case id")
    bundle_parser.add_argument("--output", "-o", default="bundles", help="Output directory")
    bundle_parser.set_defaults(func=cmd_bundle)

    stats_parser = subparsers.add_parser("stats", help="Show system statistics")
    stats_parser.set_defaults(func=cmd_stats)

    serve_parser = subparsers.add_parser("serve", help="Serve the development API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true")
    serve_parser.set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)

    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    if not args.command:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except Exception:
        logger.exception(f"{args.command} failed")
        return 1


def _job(*argv: str):
    def run() -> int:
        return main(list(argv))
    return run


# Console scripts for the scheduled jobs
monitor_legislature = _job("monitor", "legislature")
monitor_federal_bills = _job("monitor", "federal-bills")
monitor_wsib = _job("monitor", "wsib")
monitor_disability = _job("monitor", "disability")
monitor_corporate = _job("monitor", "corporate")
monitor_lobbyists = _job("monitor", "lobbyists")
scan_government_data = _job("monitor", "government-data")
scan_legislation = _job("monitor", "legislation")
daily_summary = _job("summary")
send_telegram = _job("notify", "telegram")
send_discord = _job("notify", "discord")
send_alerts = _job("notify-alerts")
final_cleanup = _job("cleanup")


if __name__ == "__main__":
    sys.exit(main())
