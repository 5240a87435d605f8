"""Daily validation counters."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from typing import Any

from .models import STATUSES, OptionStore

STATS_OPTION = "mailodds_daily_stats"
RETENTION_DAYS = 30
COUNTER_FIELDS = ("total",) + STATUSES

NowFn = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def empty_counters() -> dict[str, int]:
    return dict.fromkeys(COUNTER_FIELDS, 0)


class DailyStatsStore:
    """Date-keyed counters of live validations, pruned to the last 30 days on write."""

    def __init__(self, options: OptionStore, *, now_fn: NowFn = utc_now) -> None:
        self._options = options
        self._now_fn = now_fn

    def _today(self) -> date:
        return self._now_fn().astimezone(timezone.utc).date()

    def load(self) -> dict[str, dict[str, int]]:
        stats = self._options.get(STATS_OPTION, {})
        return stats if isinstance(stats, dict) else {}

    def record(self, status: str) -> None:
        """Count one live validation with the given status."""
        stats = self.load()
        today = self._today()
        counters = stats.setdefault(today.isoformat(), empty_counters())
        counters["total"] = counters.get("total", 0) + 1
        if status in STATUSES:
            counters[status] = counters.get(status, 0) + 1

        cutoff = (today - timedelta(days=RETENTION_DAYS)).isoformat()
        stats = {day: values for day, values in stats.items() if day >= cutoff}
        self._options.set(STATS_OPTION, stats)

    def today(self) -> dict[str, int]:
        counters = empty_counters()
        counters.update(self.load().get(self._today().isoformat(), {}))
        return counters

    def totals(self, days: int = 7) -> dict[str, int]:
        """Sum counters over the last ``days`` days, today included."""
        stats = self.load()
        today = self._today()
        totals = empty_counters()
        for offset in range(days):
            values: dict[str, Any] = stats.get((today - timedelta(days=offset)).isoformat(), {})
            for key in COUNTER_FIELDS:
                totals[key] += int(values.get(key, 0))
        return totals
