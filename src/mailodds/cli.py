"""CLI entrypoint for mailodds."""

from __future__ import annotations

import argparse
import copy
import json
import logging
import os
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from .bulk import CRON_STATS_OPTION, run_bulk, run_scheduled_validation
from .client import build_client
from .config import DEFAULT_BATCH_SIZE, DEFAULT_STATE_FILE, VERSION, MailOddsConfig, load_config
from .decision import check_email
from .directory import InMemoryUserDirectory, load_markers, save_markers
from .errors import ConfigError, MailOddsError, NoApiKeyError
from .integrations import build_adapters
from .io_csv import export_rows, read_users, write_rows
from .logging_utils import configure_logging, get_logger
from .models import STATUSES, OptionStore, UserDirectory
from .validation import INTEGRATIONS
from .stats import DailyStatsStore
from .store import JsonFileOptionStore, purge_plugin_data

SUMMARY_LABELS = {
    "valid": "Valid",
    "invalid": "Invalid",
    "catch_all": "Catch-all",
    "do_not_mail": "Do Not Mail",
    "unknown": "Unknown",
}


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(
        description="MailOdds email validation - single lookups, bulk runs, and status."
    )
    parser.add_argument(
        "--state-file",
        default=DEFAULT_STATE_FILE,
        help="JSON file holding settings, cached results, stats and user markers.",
    )
    parser.add_argument("--api-key", help="MailOdds key (or set MAILODDS_API_KEY env var).")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Validate a single email.")
    validate.add_argument("email", help="Email address to validate.")
    validate.add_argument(
        "--depth",
        choices=["standard", "enhanced"],
        help="Validation depth (default: stored setting).",
    )
    validate.add_argument("--skip-cache", action="store_true", help="Bypass the result cache.")
    validate.add_argument("--format", choices=["table", "json"], default="table")

    bulk = subparsers.add_parser("bulk", help="Bulk validate unvalidated users.")
    bulk.add_argument("--users", required=True, help="CSV file with id,email columns.")
    bulk.add_argument(
        "--batch", type=int, default=DEFAULT_BATCH_SIZE, help="Number of users per batch."
    )
    bulk.add_argument(
        "--limit", type=int, default=0, help="Maximum total users to validate (0 = all)."
    )
    bulk.add_argument("--output", help="Optional CSV path for exported results.")
    bulk.add_argument("--no-progress", action="store_true", help="Disable tqdm progress bars.")

    check = subparsers.add_parser("check", help="Apply the block policy to one email.")
    check.add_argument("email", help="Email address to check.")
    check.add_argument(
        "--threshold",
        choices=["reject", "caution"],
        help="Block threshold (default: stored setting).",
    )

    guard = subparsers.add_parser(
        "guard", help="Run a form submission through an enabled integration adapter."
    )
    guard.add_argument("--integration", required=True, choices=INTEGRATIONS)
    guard.add_argument("--submission", required=True, help="JSON file with the submission.")
    guard.add_argument(
        "--threshold",
        choices=["reject", "caution"],
        help="Block threshold (default: stored setting).",
    )

    cron = subparsers.add_parser("cron", help="Run one scheduled validation pass.")
    cron.add_argument("--users", required=True, help="CSV file with id,email columns.")

    status = subparsers.add_parser("status", help="Show settings and validation stats.")
    status.add_argument("--users", help="CSV file with id,email columns.")

    subparsers.add_parser("purge", help="Delete all stored settings, cache, stats and markers.")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def namespace_to_config(args: argparse.Namespace, options: OptionStore) -> MailOddsConfig:
    """Merge stored options, environment and CLI flags into a validated config."""
    api_key = args.api_key or os.getenv("MAILODDS_API_KEY")
    return load_config(
        options,
        api_key=api_key,
        batch_size=getattr(args, "batch", None),
        limit=getattr(args, "limit", None),
        action_threshold=getattr(args, "threshold", None),
        state_file=args.state_file,
    )


def _format_table(rows: list[tuple[str, str]]) -> str:
    width = max((len(label) for label, _ in rows), default=0)
    return "\n".join(f"{label.ljust(width)}  {value}" for label, value in rows)


def _result_rows(result: dict[str, object]) -> list[tuple[str, str]]:
    rows = [
        ("email", str(result.get("email") or "")),
        ("status", str(result.get("status") or "unknown")),
        ("action", str(result.get("action") or "unknown")),
        ("sub_status", str(result.get("sub_status") or "-")),
    ]
    for field in ("free_provider", "disposable", "role_account", "mx_found"):
        rows.append((field, "true" if result.get(field) else "false"))
    if result.get("depth"):
        rows.append(("depth", str(result["depth"])))
    if result.get("cached"):
        rows.append(("cached", "true"))
    return rows


def command_validate(
    args: argparse.Namespace, config: MailOddsConfig, options: OptionStore, logger: logging.Logger
) -> int:
    client = build_client(config, options=options, logger=logger)
    result = client.validate(args.email, depth=args.depth, skip_cache=args.skip_cache)
    payload = result.to_dict()

    if args.format == "json":
        print(json.dumps(payload, indent=2))
        return 0

    print(_format_table(_result_rows(payload)))
    if result.action == "accept":
        logger.info("Email is valid.")
    elif result.action == "reject":
        logger.warning("Email should be rejected.")
    elif result.action == "accept_with_caution":
        logger.warning("Email is risky (accept with caution).")
    else:
        logger.warning("Email status is unknown.")
    return 0


def command_check(
    args: argparse.Namespace, config: MailOddsConfig, options: OptionStore, logger: logging.Logger
) -> int:
    client = build_client(config, options=options, logger=logger)
    decision = check_email(client, args.email, config.action_threshold, logger=logger)
    if decision.allowed:
        print("allow")
        return 0
    print(f"block: {decision.plain_message}")
    return 3


def _load_submission(path: str) -> dict[str, object]:
    try:
        submission = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Cannot read submission {path}: {exc}") from exc
    if not isinstance(submission, dict):
        raise ConfigError(f"Submission {path} must hold a JSON object")
    return submission


def command_guard(
    args: argparse.Namespace, config: MailOddsConfig, options: OptionStore, logger: logging.Logger
) -> int:
    """Print the submission after the adapter ran; exit 3 when it recorded a block."""
    submission = _load_submission(args.submission)
    client = build_client(config, options=options, logger=logger)
    adapter = build_adapters(config.integrations, client=client).get(args.integration)
    if adapter is None:
        logger.info("Integration %s is not active; submission passed through.", args.integration)
        print(json.dumps(submission, indent=2))
        return 0

    original = copy.deepcopy(submission)
    guarded = adapter.guard(
        submission, client=client, threshold=config.action_threshold, logger=logger
    )
    print(json.dumps(guarded, indent=2))
    return 0 if guarded == original else 3


def _load_directory(path: str, options: OptionStore) -> InMemoryUserDirectory:
    return InMemoryUserDirectory(read_users(path), load_markers(options))


@contextmanager
def _page_writes(options: JsonFileOptionStore, directory: InMemoryUserDirectory) -> Iterator[None]:
    with options.deferred_writes():
        yield
        save_markers(options, directory)


def command_bulk(
    args: argparse.Namespace,
    config: MailOddsConfig,
    options: JsonFileOptionStore,
    logger: logging.Logger,
) -> int:
    client = build_client(config, options=options, logger=logger)
    if not client.has_key():
        raise NoApiKeyError("API key not configured. Pass --api-key or set MAILODDS_API_KEY.")
    directory = _load_directory(args.users, options)
    logger.info("Starting bulk validation...")
    try:
        summary = run_bulk(
            client,
            directory,
            batch_size=config.batch_size,
            limit=config.limit,
            logger=logger,
            show_progress=not args.no_progress,
            page_scope=lambda: _page_writes(options, directory),
        )
    finally:
        save_markers(options, directory)

    lines = ["Results:", f"  Total processed: {summary.processed}"]
    for status in ("valid", "invalid", "catch_all", "do_not_mail", "unknown"):
        lines.append(f"  {(SUMMARY_LABELS[status] + ':').ljust(16)} {summary.by_status[status]}")
    if summary.errors:
        lines.append(f"  {'Errors:'.ljust(16)} {summary.errors}")
    print("\n".join(lines))

    if args.output:
        write_rows(args.output, export_rows(directory))
        logger.info("Wrote results to %s", args.output)
    logger.info("Bulk validation complete.")
    return 0


def command_cron(
    args: argparse.Namespace,
    config: MailOddsConfig,
    options: JsonFileOptionStore,
    logger: logging.Logger,
) -> int:
    if not config.cron_enabled:
        logger.info("Scheduled validation is disabled (mailodds_cron_enabled).")
        return 0
    client = build_client(config, options=options, logger=logger)
    directory = _load_directory(args.users, options)
    with options.deferred_writes():
        try:
            count = run_scheduled_validation(
                client, directory, options, batch_size=config.batch_size, logger=logger
            )
        finally:
            save_markers(options, directory)
    logger.info("Scheduled validation covered %d users.", count)
    return 0


def build_status_rows(
    config: MailOddsConfig, options: OptionStore, directory: UserDirectory | None = None
) -> list[tuple[str, str]]:
    """Settings and counters shown by ``mailodds status``."""
    stats = DailyStatsStore(options)
    rows = [
        ("Version", VERSION),
        ("API Key", "Configured" if config.api_key else "NOT SET"),
        ("Test Mode", "Yes" if config.test_mode else "No"),
        ("Depth", config.depth),
        ("Block Threshold", config.action_threshold),
        ("Policy ID", str(config.policy_id) if config.policy_id > 0 else "Default"),
        ("Weekly Cron", "Enabled" if config.cron_enabled else "Disabled"),
        ("Integrations", ", ".join(config.integrations) or "None"),
    ]
    cron_stats = options.get(CRON_STATS_OPTION, {})
    if isinstance(cron_stats, dict) and cron_stats.get("last_run"):
        rows.append(
            ("Last Cron Run", f"{cron_stats['last_run']} ({cron_stats.get('last_count', 0)} users)")
        )
    today = stats.today()
    if today["total"]:
        rows.append(("Today Validated", str(today["total"])))
    week = stats.totals(days=7)
    rows.append(
        ("Last 7 Days", " ".join(f"{status}={week[status]}" for status in ("total",) + STATUSES))
    )
    if directory is not None:
        rows.append(("Users Validated", str(directory.count_validated())))
    return rows


def command_status(
    args: argparse.Namespace, config: MailOddsConfig, options: OptionStore, logger: logging.Logger
) -> int:
    directory = _load_directory(args.users, options) if args.users else None
    print(_format_table(build_status_rows(config, options, directory)))
    return 0


def command_purge(
    args: argparse.Namespace, config: MailOddsConfig, options: OptionStore, logger: logging.Logger
) -> int:
    removed = purge_plugin_data(options)
    logger.info("Removed %d stored entries from %s", removed, config.state_file)
    return 0


COMMANDS = {
    "validate": command_validate,
    "check": command_check,
    "guard": command_guard,
    "bulk": command_bulk,
    "cron": command_cron,
    "status": command_status,
    "purge": command_purge,
}


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    logger = get_logger()
    try:
        options = JsonFileOptionStore(args.state_file)
        config = namespace_to_config(args, options)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    try:
        return COMMANDS[args.command](args, config, options, logger)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2
    except MailOddsError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
