"""Accept/block rules applied to validation results."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from bs4 import BeautifulSoup

from .errors import MailOddsError
from .models import ValidationClientProtocol, ValidationResult
from .validation import sanitize_email, sanitize_threshold

MESSAGE_NOT_ACCEPTED = (
    "<strong>Error:</strong> This email address is not accepted. Please use a different email."
)
MESSAGE_UNVERIFIED = (
    "<strong>Error:</strong> This email address could not be verified. Please check and try again."
)
MESSAGE_RISKY = (
    "<strong>Error:</strong> This email address appears risky. Please use a different email."
)
MESSAGE_RETRY_LATER = (
    "<strong>Error:</strong> We could not verify this email at this time. "
    "Please try again later."
)


def strip_tags(markup: str) -> str:
    """Return the visible text of an HTML fragment."""
    return BeautifulSoup(markup or "", "html.parser").get_text().strip()


@dataclass(frozen=True)
class Decision:
    """Outcome of a policy check: allowed, or blocked with a user-facing message."""

    allowed: bool
    message: str | None = None

    @property
    def plain_message(self) -> str:
        return strip_tags(self.message or "")


ALLOW = Decision(allowed=True)


def block(message: str) -> Decision:
    return Decision(allowed=False, message=message)


def decide(result: ValidationResult | MailOddsError | None, threshold: str) -> Decision:
    """Map a validation outcome to allow/block under the configured threshold.

    Errors always allow.
    ``reject`` is always blocked; ``caution`` additionally blocks
    ``accept_with_caution`` and ``retry_later``.
    """
    if result is None or isinstance(result, MailOddsError):
        return ALLOW

    threshold = sanitize_threshold(threshold)
    if result.action == "reject":
        if result.status == "do_not_mail":
            return block(MESSAGE_NOT_ACCEPTED)
        return block(MESSAGE_UNVERIFIED)
    if threshold == "caution" and result.action == "accept_with_caution":
        return block(MESSAGE_RISKY)
    if threshold == "caution" and result.action == "retry_later":
        return block(MESSAGE_RETRY_LATER)
    return ALLOW


def check_email(
    client: ValidationClientProtocol,
    email: str,
    threshold: str,
    *,
    logger: logging.Logger,
) -> Decision:
    """Validate ``email`` and decide; empty input is allowed without an API call."""
    email = sanitize_email(email)
    if not email:
        return ALLOW
    try:
        result = client.validate(email)
    except MailOddsError as exc:
        logger.warning("Validation unavailable for %s, allowing (%s): %s", email, exc.kind, exc)
        return decide(exc, threshold)
    return decide(result, threshold)
