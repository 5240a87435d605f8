"""In-memory user directory with per-user validation markers."""

from __future__ import annotations

from typing import Any

from .models import DirectoryUser, OptionStore, ValidationMarker

MARKERS_OPTION = "mailodds_user_markers"


class InMemoryUserDirectory:
    """Users in insertion order; a user is "validated" once it carries a marker."""

    def __init__(
        self,
        users: list[DirectoryUser],
        markers: dict[int, ValidationMarker] | None = None,
    ) -> None:
        self._users = list(users)
        self._markers: dict[int, ValidationMarker] = dict(markers or {})

    @property
    def users(self) -> list[DirectoryUser]:
        return list(self._users)

    @property
    def markers(self) -> dict[int, ValidationMarker]:
        return dict(self._markers)

    def list_unvalidated(self, page_size: int) -> list[DirectoryUser]:
        page: list[DirectoryUser] = []
        for user in self._users:
            if len(page) >= page_size:
                break
            if user.id not in self._markers:
                page.append(user)
        return page

    def write_result(self, user_id: int, marker: ValidationMarker) -> None:
        self._markers[user_id] = marker

    def count_validated(self) -> int:
        known = {user.id for user in self._users}
        return sum(1 for user_id in self._markers if user_id in known)

    def recently_validated(self, count: int = 50) -> list[tuple[DirectoryUser, ValidationMarker]]:
        """Validated users, newest marker first."""
        rows = [(user, self._markers[user.id]) for user in self._users if user.id in self._markers]
        rows.sort(key=lambda row: row[1].validated_at, reverse=True)
        return rows[:count]

    def clear_markers(self) -> None:
        self._markers.clear()


def load_markers(options: OptionStore) -> dict[int, ValidationMarker]:
    """Read persisted markers (stored as ``{"<id>": {status, action, validated_at}}``)."""
    stored: Any = options.get(MARKERS_OPTION, {})
    markers: dict[int, ValidationMarker] = {}
    if not isinstance(stored, dict):
        return markers
    for user_id, values in stored.items():
        if not isinstance(values, dict):
            continue
        markers[int(user_id)] = ValidationMarker(
            status=str(values.get("status", "")),
            action=str(values.get("action", "")),
            validated_at=str(values.get("validated_at", "")),
        )
    return markers


def save_markers(options: OptionStore, directory: InMemoryUserDirectory) -> None:
    options.set(
        MARKERS_OPTION,
        {str(user_id): marker.to_dict() for user_id, marker in directory.markers.items()},
    )
