import json
from pathlib import Path

import pytest

from mailodds import cli
from mailodds.errors import NetworkError
from mailodds.models import ValidationResult
from mailodds.store import JsonFileOptionStore


class StubClient:
    def __init__(self, *, key: bool = True, error: Exception | None = None) -> None:
        self._key = key
        self._error = error
        self.validate_calls: list[tuple[str, dict[str, object]]] = []

    def has_key(self) -> bool:
        return self._key

    def validate(self, email: str, **kwargs: object) -> ValidationResult:
        self.validate_calls.append((email, kwargs))
        if self._error:
            raise self._error
        return ValidationResult(
            email=email, status="do_not_mail", action="reject", mx_found=True, depth="enhanced"
        )

    def validate_batch(self, emails: list[str], **_kwargs: object) -> list[ValidationResult]:
        if self._error:
            raise self._error
        return [ValidationResult(email=email, status="valid", action="accept") for email in emails]


def _patch_client(monkeypatch: pytest.MonkeyPatch, client: StubClient) -> None:
    monkeypatch.setattr(cli, "build_client", lambda config, options, logger: client)


def _users_file(tmp_path: Path) -> Path:
    path = tmp_path / "users.csv"
    path.write_text("id,email\n1,a@example.com\n2,b@example.com\n3,c@example.com\n", "utf-8")
    return path


def test_parse_args_requires_command() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args([])


def test_parse_args_bulk_defaults() -> None:
    args = cli.parse_args(["bulk", "--users", "users.csv"])
    assert args.batch == 50
    assert args.limit == 0
    assert args.state_file == ".mailodds.json"


def test_main_returns_two_on_invalid_config(tmp_path: Path) -> None:
    state = tmp_path / "state.json"
    users = _users_file(tmp_path)
    argv = ["--state-file", str(state), "bulk", "--users", str(users), "--batch", "0"]
    assert cli.main(argv) == 2


def test_validate_json_output(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    client = StubClient()
    _patch_client(monkeypatch, client)

    exit_code = cli.main(
        [
            "--state-file",
            str(tmp_path / "state.json"),
            "validate",
            "a@example.com",
            "--depth",
            "standard",
            "--skip-cache",
            "--format",
            "json",
        ]
    )

    assert exit_code == 0
    assert client.validate_calls == [("a@example.com", {"depth": "standard", "skip_cache": True})]
    payload = json.loads(capsys.readouterr().out)
    assert payload["status"] == "do_not_mail"
    assert payload["mx_found"] is True


def test_validate_table_output(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _patch_client(monkeypatch, StubClient())
    assert cli.main(["--state-file", str(tmp_path / "s.json"), "validate", "a@example.com"]) == 0
    out = capsys.readouterr().out
    assert "status" in out
    assert "do_not_mail" in out
    assert "sub_status" in out


def test_validate_returns_one_on_client_error(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    _patch_client(monkeypatch, StubClient(error=NetworkError("down")))
    assert cli.main(["--state-file", str(tmp_path / "s.json"), "validate", "a@example.com"]) == 1


def test_check_blocks_and_fails_open(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    state = str(tmp_path / "s.json")
    _patch_client(monkeypatch, StubClient())
    assert cli.main(["--state-file", state, "check", "a@example.com"]) == 3
    assert capsys.readouterr().out.startswith("block: Error: This email address is not accepted")

    _patch_client(monkeypatch, StubClient(error=NetworkError("down")))
    assert cli.main(["--state-file", state, "check", "a@example.com"]) == 0
    assert capsys.readouterr().out.strip() == "allow"


def test_bulk_persists_markers_and_exports(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _patch_client(monkeypatch, StubClient())
    state = tmp_path / "state.json"
    output = tmp_path / "results.csv"

    exit_code = cli.main(
        [
            "--state-file",
            str(state),
            "bulk",
            "--users",
            str(_users_file(tmp_path)),
            "--batch",
            "2",
            "--output",
            str(output),
            "--no-progress",
        ]
    )

    assert exit_code == 0
    assert "Total processed: 3" in capsys.readouterr().out
    markers = JsonFileOptionStore(str(state)).get("mailodds_user_markers")
    assert sorted(markers) == ["1", "2", "3"]
    assert output.read_text(encoding="utf-8").count("valid,accept") == 3


def test_bulk_requires_api_key(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _patch_client(monkeypatch, StubClient(key=False))
    exit_code = cli.main(
        ["--state-file", str(tmp_path / "s.json"), "bulk", "--users", str(_users_file(tmp_path))]
    )
    assert exit_code == 1


def test_cron_respects_setting(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _patch_client(monkeypatch, StubClient())
    state = tmp_path / "state.json"
    users = str(_users_file(tmp_path))

    assert cli.main(["--state-file", str(state), "cron", "--users", users]) == 0
    assert JsonFileOptionStore(str(state)).get("mailodds_cron_stats") is None

    JsonFileOptionStore(str(state)).set("mailodds_cron_enabled", True)
    assert cli.main(["--state-file", str(state), "cron", "--users", users]) == 0
    assert JsonFileOptionStore(str(state)).get("mailodds_cron_stats")["last_count"] == 3


def test_status_and_purge(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    state = tmp_path / "state.json"
    store = JsonFileOptionStore(str(state))
    store.set("mailodds_api_key", "mo_test_abc")
    store.set("mailodds_integrations", {"cf7": True})
    store.set("mailodds_user_markers", {"1": {"status": "valid", "action": "accept"}})

    users = str(_users_file(tmp_path))
    assert cli.main(["--state-file", str(state), "status", "--users", users]) == 0
    out = capsys.readouterr().out
    assert "Configured" in out
    assert "Test Mode" in out and "Yes" in out
    assert "cf7" in out
    assert "Users Validated  1" in out

    assert cli.main(["--state-file", str(state), "purge"]) == 0
    assert JsonFileOptionStore(str(state)).names() == []


def test_corrupt_state_file_is_a_config_error(tmp_path: Path) -> None:
    state = tmp_path / "state.json"
    state.write_text("{trunc", encoding="utf-8")
    assert cli.main(["--state-file", str(state), "status"]) == 2


def _submission(tmp_path: Path, payload: dict[str, object]) -> str:
    path = tmp_path / "submission.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


def test_guard_blocks_through_enabled_adapter(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    client = StubClient()
    _patch_client(monkeypatch, client)
    state = tmp_path / "state.json"
    JsonFileOptionStore(str(state)).set("mailodds_integrations", {"cf7": True})
    submission = _submission(
        tmp_path, {"tag": "your-email", "posted": {"your-email": "a@example.com"}}
    )

    exit_code = cli.main(
        ["--state-file", str(state), "guard", "--integration", "cf7", "--submission", submission]
    )

    assert exit_code == 3
    assert [email for email, _ in client.validate_calls] == ["a@example.com"]
    guarded = json.loads(capsys.readouterr().out)
    assert guarded["invalid"]["your-email"].startswith("Error: This email address is not accepted")


def test_guard_passes_submission_through_when_integration_disabled(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    client = StubClient()
    _patch_client(monkeypatch, client)
    payload = {"tag": "your-email", "posted": {"your-email": "a@example.com"}}
    submission = _submission(tmp_path, payload)

    exit_code = cli.main(
        [
            "--state-file",
            str(tmp_path / "state.json"),
            "guard",
            "--integration",
            "cf7",
            "--submission",
            submission,
        ]
    )

    assert exit_code == 0
    assert client.validate_calls == []
    assert json.loads(capsys.readouterr().out) == payload


def test_guard_unchanged_submission_exits_zero(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    _patch_client(monkeypatch, StubClient())
    state = tmp_path / "state.json"
    JsonFileOptionStore(str(state)).set("mailodds_integrations", ["woocommerce"])
    submission = _submission(tmp_path, {"email": ""})

    argv = ["--state-file", str(state), "guard", "--integration", "woocommerce"]
    assert cli.main(argv + ["--submission", submission]) == 0


def test_guard_rejects_unreadable_submission(tmp_path: Path) -> None:
    missing = str(tmp_path / "missing.json")
    argv = ["--state-file", str(tmp_path / "s.json"), "guard", "--integration", "cf7"]
    assert cli.main(argv + ["--submission", missing]) == 2
