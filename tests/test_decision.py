import logging

import pytest

from mailodds.decision import (
    ALLOW,
    MESSAGE_NOT_ACCEPTED,
    MESSAGE_RETRY_LATER,
    MESSAGE_RISKY,
    MESSAGE_UNVERIFIED,
    check_email,
    decide,
    strip_tags,
)
from mailodds.errors import ApiError, NetworkError, NoApiKeyError
from mailodds.models import ValidationResult


def _result(action: str, status: str = "valid") -> ValidationResult:
    return ValidationResult(email="a@example.com", status=status, action=action)


class StubClient:
    def __init__(self, outcome: ValidationResult | Exception) -> None:
        self._outcome = outcome
        self.calls: list[str] = []

    def has_key(self) -> bool:
        return True

    def validate(self, email: str, **_kwargs: object) -> ValidationResult:
        self.calls.append(email)
        if isinstance(self._outcome, Exception):
            raise self._outcome
        return self._outcome

    def validate_batch(self, emails: list[str], **_kwargs: object) -> list[ValidationResult]:
        raise NotImplementedError


@pytest.mark.parametrize("threshold", ["reject", "caution"])
def test_errors_fail_open_for_every_threshold(threshold: str) -> None:
    assert decide(NetworkError("timeout"), threshold) == ALLOW
    assert decide(ApiError("boom", status=500), threshold) == ALLOW
    assert decide(None, threshold) == ALLOW


@pytest.mark.parametrize("threshold", ["reject", "caution"])
def test_reject_message_depends_on_status(threshold: str) -> None:
    do_not_mail = decide(_result("reject", "do_not_mail"), threshold)
    invalid = decide(_result("reject", "invalid"), threshold)
    assert not do_not_mail.allowed
    assert do_not_mail.message == MESSAGE_NOT_ACCEPTED
    assert not invalid.allowed
    assert invalid.message == MESSAGE_UNVERIFIED


def test_caution_threshold_blocks_risky_and_retry_later() -> None:
    risky = decide(_result("accept_with_caution", "catch_all"), "caution")
    retry = decide(_result("retry_later", "unknown"), "caution")
    assert risky.message == MESSAGE_RISKY
    assert retry.message == MESSAGE_RETRY_LATER


def test_reject_threshold_allows_risky_and_retry_later() -> None:
    assert decide(_result("accept_with_caution", "catch_all"), "reject") == ALLOW
    assert decide(_result("retry_later", "unknown"), "reject") == ALLOW
    assert decide(_result("accept"), "caution") == ALLOW


def test_unknown_threshold_behaves_like_reject() -> None:
    assert decide(_result("accept_with_caution"), "strict") == ALLOW


def test_plain_message_strips_markup() -> None:
    decision = decide(_result("reject", "do_not_mail"), "reject")
    assert decision.plain_message == (
        "Error: This email address is not accepted. Please use a different email."
    )
    assert strip_tags("") == ""


def test_check_email_skips_empty_input() -> None:
    client = StubClient(_result("reject", "invalid"))
    assert check_email(client, "  ", "reject", logger=logging.getLogger("test")) == ALLOW
    assert check_email(client, "junk", "reject", logger=logging.getLogger("test")) == ALLOW
    assert client.calls == []


def test_check_email_fails_open_on_client_errors() -> None:
    for error in (NetworkError("down"), NoApiKeyError("no key"), ApiError("x", status=401)):
        client = StubClient(error)
        decision = check_email(client, "a@example.com", "caution", logger=logging.getLogger("test"))
        assert decision.allowed
        assert client.calls == ["a@example.com"]


def test_check_email_blocks_rejected_address() -> None:
    client = StubClient(_result("reject", "invalid"))
    decision = check_email(client, " a@example.com ", "reject", logger=logging.getLogger("test"))
    assert not decision.allowed
    assert client.calls == ["a@example.com"]
