"""Option storage, transient cache and cache keys."""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Any

from .errors import ConfigError
from .models import OptionStore, UserDirectory

OPTION_PREFIX = "mailodds_"
TRANSIENT_PREFIX = "_transient_"
CACHE_KEY_LENGTH = 16

ClockFn = Callable[[], float]


def cache_key(email: str, depth: str) -> str:
    """Return the transient key for an email/depth pair (case-insensitive on email)."""
    digest = hashlib.sha256(f"{email.lower()}:{depth}".encode("utf-8")).hexdigest()
    return OPTION_PREFIX + digest[:CACHE_KEY_LENGTH]


class MemoryOptionStore:
    """Process-local option store."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(initial or {})
        self._lock = Lock()

    def get(self, name: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(name, default)

    def set(self, name: str, value: Any) -> None:
        with self._lock:
            self._values[name] = value

    def delete(self, name: str) -> None:
        with self._lock:
            self._values.pop(name, None)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._values)


def prune_expired(values: dict[str, Any], now: float) -> dict[str, Any]:
    """Drop transient entries whose expiry time has passed."""
    kept: dict[str, Any] = {}
    for name, value in values.items():
        if name.startswith(TRANSIENT_PREFIX) and isinstance(value, dict):
            expires_at = value.get("expires_at")
            if expires_at and now >= float(expires_at):
                continue
        kept[name] = value
    return kept


class JsonFileOptionStore(MemoryOptionStore):
    """Option store persisted to a JSON file.

    Writes go through a temporary file that replaces the state file, so an
    interrupted write leaves the previous state intact. Expired transients are
    dropped when the file is loaded and on every flush. Inside
    :meth:`deferred_writes` changes stay in memory until the scope exits.
    """

    def __init__(self, path: str, *, clock: ClockFn = time.time) -> None:
        self._path = Path(path)
        self._clock = clock
        self._deferred = 0
        initial: dict[str, Any] = {}
        if self._path.exists():
            content = self._path.read_text(encoding="utf-8")
            if content.strip():
                try:
                    initial = json.loads(content)
                except ValueError as exc:
                    raise ConfigError(f"State file {path} is not valid JSON") from exc
                if not isinstance(initial, dict):
                    raise ConfigError(f"State file {path} must hold a JSON object")
        super().__init__(prune_expired(initial, clock()))

    @property
    def path(self) -> str:
        return str(self._path)

    def set(self, name: str, value: Any) -> None:
        super().set(name, value)
        if not self._deferred:
            self._flush()

    def delete(self, name: str) -> None:
        super().delete(name)
        if not self._deferred:
            self._flush()

    @contextmanager
    def deferred_writes(self) -> Iterator[None]:
        """Batch every change made inside the scope into a single flush."""
        self._deferred += 1
        try:
            yield
        finally:
            self._deferred -= 1
            if not self._deferred:
                self._flush()

    def _flush(self) -> None:
        with self._lock:
            self._values = prune_expired(self._values, self._clock())
            payload = json.dumps(self._values, indent=2, sort_keys=True)
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self._path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class TransientCache:
    """Expiring cache entries kept inside an option store."""

    def __init__(self, options: OptionStore, *, clock: ClockFn = time.time) -> None:
        self._options = options
        self._clock = clock

    def get(self, key: str) -> Any | None:
        entry = self._options.get(TRANSIENT_PREFIX + key)
        if not isinstance(entry, dict):
            return None
        expires_at = entry.get("expires_at")
        if expires_at and self._clock() >= float(expires_at):
            self._options.delete(TRANSIENT_PREFIX + key)
            return None
        return entry.get("value")

    def set(self, key: str, value: Any, ttl: int) -> None:
        expires_at = self._clock() + ttl if ttl > 0 else 0
        self._options.set(TRANSIENT_PREFIX + key, {"value": value, "expires_at": expires_at})

    def delete(self, key: str) -> None:
        self._options.delete(TRANSIENT_PREFIX + key)


def purge_plugin_data(options: OptionStore, directory: UserDirectory | None = None) -> int:
    """Delete every option, cached result and user marker owned by this package.

    Returns the number of option entries removed.
    """
    removed = 0
    for name in options.names():
        if name.startswith(OPTION_PREFIX) or name.startswith(TRANSIENT_PREFIX + OPTION_PREFIX):
            options.delete(name)
            removed += 1
    clear_markers = getattr(directory, "clear_markers", None)
    if callable(clear_markers):
        clear_markers()
    return removed
