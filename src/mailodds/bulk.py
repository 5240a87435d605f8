"""Bulk validation of directory users."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractContextManager, nullcontext
from datetime import datetime, timezone

from tqdm import tqdm

from .config import DEFAULT_BATCH_SIZE
from .errors import MailOddsError
from .models import (
    BulkSummary,
    DirectoryUser,
    OptionStore,
    PageOutcome,
    UserDirectory,
    ValidationClientProtocol,
    ValidationMarker,
    ValidationResult,
)

CRON_STATS_OPTION = "mailodds_cron_stats"
AJAX_BATCH_SIZE = 20
ERROR_STATUS = "error"
ERROR_ACTION = "retry_later"

TimestampFn = Callable[[], str]
ScopeFn = Callable[[], AbstractContextManager[object]]


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _write_results(
    page: list[DirectoryUser],
    results: list[ValidationResult],
    directory: UserDirectory,
    *,
    timestamp_fn: TimestampFn,
) -> tuple[list[ValidationResult], list[DirectoryUser]]:
    """Write markers for results matched by email; return (written, users left unmatched)."""
    by_email = {user.email.lower(): user for user in page}
    written: list[ValidationResult] = []
    for result in results:
        user = by_email.pop(result.email.lower(), None)
        if user is None:
            continue
        directory.write_result(
            user.id,
            ValidationMarker(
                status=result.status, action=result.action, validated_at=timestamp_fn()
            ),
        )
        written.append(result)
    return written, list(by_email.values())


def _mark_failed(
    users: list[DirectoryUser], directory: UserDirectory, *, timestamp_fn: TimestampFn
) -> None:
    for user in users:
        directory.write_result(
            user.id,
            ValidationMarker(status=ERROR_STATUS, action=ERROR_ACTION, validated_at=timestamp_fn()),
        )


def _run_page(
    client: ValidationClientProtocol,
    directory: UserDirectory,
    page: list[DirectoryUser],
    summary: BulkSummary,
    *,
    logger: logging.Logger,
    timestamp_fn: TimestampFn,
) -> None:
    try:
        results = client.validate_batch([user.email for user in page])
    except MailOddsError as exc:
        logger.warning("Batch of %d failed (%s): %s", len(page), exc.kind, exc)
        _mark_failed(page, directory, timestamp_fn=timestamp_fn)
        summary.errors += len(page)
        return

    written, unmatched = _write_results(page, results, directory, timestamp_fn=timestamp_fn)
    for result in written:
        if result.status in summary.by_status:
            summary.by_status[result.status] += 1
    summary.processed += len(written)
    if unmatched:
        logger.warning("%d users missing from batch response", len(unmatched))
        _mark_failed(unmatched, directory, timestamp_fn=timestamp_fn)
        summary.errors += len(unmatched)


def run_bulk(
    client: ValidationClientProtocol,
    directory: UserDirectory,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    limit: int = 0,
    logger: logging.Logger,
    show_progress: bool = False,
    timestamp_fn: TimestampFn = utc_timestamp,
    page_scope: ScopeFn = nullcontext,
) -> BulkSummary:
    """Validate unmarked users page by page until none remain or ``limit`` users were tried.

    A failed page is marked ``error``/``retry_later`` and skipped so the run always ends.
    Each page runs inside ``page_scope()``, which lets a file-backed store write
    its cache and stats once per page.
    """
    summary = BulkSummary()
    progress = None
    if show_progress:
        progress = tqdm(total=limit or None, desc="validating users", unit="user")
    try:
        while True:
            if limit > 0 and summary.attempted >= limit:
                break
            page_size = min(batch_size, limit - summary.attempted) if limit > 0 else batch_size
            page = directory.list_unvalidated(page_size)
            if not page:
                break
            summary.pages += 1

            with page_scope():
                _run_page(
                    client, directory, page, summary, logger=logger, timestamp_fn=timestamp_fn
                )

            logger.info("Processed %d users...", summary.attempted)
            if progress is not None:
                progress.update(len(page))
    finally:
        if progress is not None:
            progress.close()
    return summary


def run_bulk_page(
    client: ValidationClientProtocol,
    directory: UserDirectory,
    *,
    offset: int = 0,
    batch_size: int = AJAX_BATCH_SIZE,
    timestamp_fn: TimestampFn = utc_timestamp,
) -> PageOutcome:
    """One step of an incrementally polled bulk run.

    The caller passes back ``processed`` as the next ``offset``. A failed batch
    is reported and left unmarked so the operator can retry it.
    """
    page = directory.list_unvalidated(batch_size)
    if not page:
        return PageOutcome(done=True, processed=offset)
    try:
        results = client.validate_batch([user.email for user in page])
    except MailOddsError as exc:
        return PageOutcome(done=False, processed=offset, error=str(exc))
    written, _ = _write_results(page, results, directory, timestamp_fn=timestamp_fn)
    return PageOutcome(done=False, processed=offset + len(written), batch=len(written))


def run_scheduled_validation(
    client: ValidationClientProtocol,
    directory: UserDirectory,
    options: OptionStore,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    logger: logging.Logger,
    timestamp_fn: TimestampFn = utc_timestamp,
) -> int:
    """Periodic job body: validate a single page and record when it ran.

    Returns the number of users in the page, or 0 when nothing was done.
    """
    if not client.has_key():
        return 0
    page = directory.list_unvalidated(batch_size)
    if not page:
        return 0
    try:
        results = client.validate_batch([user.email for user in page])
    except MailOddsError as exc:
        logger.warning("Scheduled validation skipped (%s): %s", exc.kind, exc)
        return 0
    _write_results(page, results, directory, timestamp_fn=timestamp_fn)

    stats = options.get(CRON_STATS_OPTION, {})
    stats = dict(stats) if isinstance(stats, dict) else {}
    stats["last_run"] = timestamp_fn()
    stats["last_count"] = len(page)
    options.set(CRON_STATS_OPTION, stats)
    return len(page)
