"""CSV helpers for user import and result export."""

from __future__ import annotations

import csv
from pathlib import Path

from .directory import InMemoryUserDirectory
from .models import DirectoryUser

CSV_FIELDS = ["id", "email", "status", "action", "validated_at"]


def read_users(path: str) -> list[DirectoryUser]:
    """Load ``id,email`` rows; rows without an email are skipped, missing ids are numbered."""
    users: list[DirectoryUser] = []
    with Path(path).open(newline="", encoding="utf-8") as file_obj:
        reader = csv.DictReader(file_obj)
        for index, row in enumerate(reader, start=1):
            email = (row.get("email") or "").strip()
            if not email:
                continue
            raw_id = (row.get("id") or "").strip()
            users.append(DirectoryUser(id=int(raw_id) if raw_id.isdigit() else index, email=email))
    return users


def export_rows(directory: InMemoryUserDirectory) -> list[dict[str, str]]:
    markers = directory.markers
    rows: list[dict[str, str]] = []
    for user in directory.users:
        marker = markers.get(user.id)
        rows.append(
            {
                "id": str(user.id),
                "email": user.email,
                "status": marker.status if marker else "",
                "action": marker.action if marker else "",
                "validated_at": marker.validated_at if marker else "",
            }
        )
    return rows


def write_rows(path: str, rows: list[dict[str, str]]) -> None:
    """Write result rows to CSV with stable schema."""
    output_path = Path(path)
    with output_path.open("w", newline="", encoding="utf-8") as file_obj:
        writer = csv.DictWriter(file_obj, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for row in rows:
            writer.writerow(row)
