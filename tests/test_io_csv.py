from pathlib import Path

from mailodds.directory import InMemoryUserDirectory
from mailodds.io_csv import CSV_FIELDS, export_rows, read_users, write_rows
from mailodds.models import DirectoryUser, ValidationMarker


def test_read_users_numbers_missing_ids_and_skips_blank_emails(tmp_path: Path) -> None:
    source = tmp_path / "users.csv"
    source.write_text(
        "id,email\n10,a@example.com\n,b@example.com\n12,\n", encoding="utf-8"
    )
    assert read_users(str(source)) == [
        DirectoryUser(id=10, email="a@example.com"),
        DirectoryUser(id=2, email="b@example.com"),
    ]


def test_write_rows_creates_csv_with_schema(tmp_path: Path) -> None:
    directory = InMemoryUserDirectory(
        [DirectoryUser(1, "a@example.com"), DirectoryUser(2, "b@example.com")],
        {1: ValidationMarker("valid", "accept", "2026-01-01T00:00:00Z")},
    )
    output = tmp_path / "out.csv"

    write_rows(str(output), export_rows(directory))

    lines = output.read_text(encoding="utf-8").splitlines()
    assert lines[0] == ",".join(CSV_FIELDS)
    assert lines[1] == "1,a@example.com,valid,accept,2026-01-01T00:00:00Z"
    assert lines[2] == "2,b@example.com,,,"
