"""Form-plugin adapters that gate submissions on the decision engine.

Each adapter knows how one form framework hands over a submission (a plain
dict here) and how that framework expects a rejection to be signalled. The
accept/block rule itself lives in :mod:`mailodds.decision`.
"""

from __future__ import annotations

import logging
from typing import Any

from .decision import Decision, check_email
from .models import ValidationClientProtocol
from .validation import sanitize_email

Submission = dict[str, Any]


class FormAdapter:
    """Base adapter: find candidate emails, check each, report blocks natively."""

    name = "form"

    def candidate_emails(self, submission: Submission) -> list[tuple[str, str]]:
        """Return ``(field_key, email)`` pairs to validate."""
        raise NotImplementedError

    def reject(self, submission: Submission, field_key: str, decision: Decision) -> None:
        """Record a block in the framework's own error structure."""
        raise NotImplementedError

    def guard(
        self,
        submission: Submission,
        *,
        client: ValidationClientProtocol,
        threshold: str,
        logger: logging.Logger,
    ) -> Submission:
        for field_key, email in self.candidate_emails(submission):
            if not email:
                continue
            decision = check_email(client, email, threshold, logger=logger)
            if not decision.allowed:
                logger.info("%s blocked %s on field %s", self.name, email, field_key)
                self.reject(submission, field_key, decision)
        return submission


class WordPressRegistrationAdapter(FormAdapter):
    """``{"user_email": ..., "errors": [...]}``; rich message kept for the login screen."""

    name = "wp_registration"

    def candidate_emails(self, submission: Submission) -> list[tuple[str, str]]:
        return [("user_email", str(submission.get("user_email") or ""))]

    def reject(self, submission: Submission, field_key: str, decision: Decision) -> None:
        submission.setdefault("errors", []).append(
            {"code": "mailodds_invalid_email", "message": decision.message}
        )


class WooCommerceAdapter(FormAdapter):
    """Handles both My Account registration (``email``) and checkout (``billing_email``)."""

    name = "woocommerce"

    def candidate_emails(self, submission: Submission) -> list[tuple[str, str]]:
        if "billing_email" in submission:
            return [("billing_email", str(submission.get("billing_email") or ""))]
        return [("email", str(submission.get("email") or ""))]

    def reject(self, submission: Submission, field_key: str, decision: Decision) -> None:
        code = "validation" if field_key == "billing_email" else "mailodds_invalid_email"
        submission.setdefault("errors", []).append({"code": code, "message": decision.message})


class WPFormsAdapter(FormAdapter):
    name = "wpforms"

    def candidate_emails(self, submission: Submission) -> list[tuple[str, str]]:
        fields = submission.get("fields") or {}
        form_fields = submission.get("form_fields") or {}
        candidates: list[tuple[str, str]] = []
        for field_id, field in form_fields.items():
            if not isinstance(field, dict) or field.get("type") != "email":
                continue
            candidates.append((str(field_id), str(fields.get(field_id) or "")))
        return candidates

    def reject(self, submission: Submission, field_key: str, decision: Decision) -> None:
        form_errors = submission.setdefault("errors", {}).setdefault(submission.get("form_id"), {})
        form_errors[field_key] = decision.plain_message


class GravityFormsAdapter(FormAdapter):
    """Per-field hook; only runs when Gravity Forms' own validation already passed."""

    name = "gravity_forms"

    def candidate_emails(self, submission: Submission) -> list[tuple[str, str]]:
        if submission.get("field_type") != "email":
            return []
        if not submission.get("result", {}).get("is_valid", False):
            return []
        value = submission.get("value")
        if isinstance(value, (list, tuple)):
            value = value[0] if value else ""
        return [("value", str(value or ""))]

    def reject(self, submission: Submission, field_key: str, decision: Decision) -> None:
        result = submission.setdefault("result", {})
        result["is_valid"] = False
        result["message"] = decision.plain_message


class ContactForm7Adapter(FormAdapter):
    name = "cf7"

    def candidate_emails(self, submission: Submission) -> list[tuple[str, str]]:
        tag = str(submission.get("tag") or "")
        posted = submission.get("posted") or {}
        return [(tag, sanitize_email(posted.get(tag)))]

    def reject(self, submission: Submission, field_key: str, decision: Decision) -> None:
        submission.setdefault("invalid", {})[field_key] = decision.plain_message


ADAPTERS: dict[str, type[FormAdapter]] = {
    adapter.name: adapter
    for adapter in (
        WordPressRegistrationAdapter,
        WooCommerceAdapter,
        WPFormsAdapter,
        GravityFormsAdapter,
        ContactForm7Adapter,
    )
}


def build_adapters(
    integrations: tuple[str, ...] | list[str], *, client: ValidationClientProtocol
) -> dict[str, FormAdapter]:
    """Instantiate the enabled adapters; nothing is hooked up without an API key."""
    if not client.has_key():
        return {}
    return {name: ADAPTERS[name]() for name in integrations if name in ADAPTERS}
