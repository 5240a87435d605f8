"""Input sanitation and runtime guardrails."""

from __future__ import annotations

import re
from collections.abc import Iterable

from .errors import ConfigError

DEPTHS = frozenset({"standard", "enhanced"})
THRESHOLDS = frozenset({"reject", "caution"})
INTEGRATIONS = ("wp_registration", "woocommerce", "wpforms", "gravity_forms", "cf7")

DEFAULT_DEPTH = "enhanced"
DEFAULT_THRESHOLD = "reject"

_LOCAL_DISALLOWED = re.compile(r"[^a-zA-Z0-9!#$%&'*+/=?^_`{|}~.\-]")
_LABEL_DISALLOWED = re.compile(r"[^a-z0-9\-]", re.IGNORECASE)
_REPEATED_DOTS = re.compile(r"\.{2,}")


def sanitize_email(value: str | None) -> str:
    """Strip disallowed characters from an email, returning "" when it cannot be salvaged.

    Follows the rules WordPress applies to user-supplied addresses.
    """
    email = (value or "").strip()
    if len(email) < 6 or email.find("@", 1) == -1:
        return ""

    local, domain = email.split("@", maxsplit=1)
    local = _LOCAL_DISALLOWED.sub("", local)
    if not local:
        return ""

    if _REPEATED_DOTS.search(domain):
        return ""
    domain = domain.strip(" \t\n\r\0\x0b.")
    if not domain:
        return ""

    labels: list[str] = []
    for label in domain.split("."):
        label = _LABEL_DISALLOWED.sub("", label.strip(" \t\n\r\0\x0b-"))
        if label:
            labels.append(label)
    if len(labels) < 2:
        return ""
    return f"{local}@{'.'.join(labels)}"


def normalize_emails(emails: Iterable[str]) -> list[str]:
    """Sanitize and dedupe (case-insensitively) a list of emails, keeping first-seen order."""
    output: list[str] = []
    seen: set[str] = set()
    for raw in emails:
        email = sanitize_email(raw)
        if not email:
            continue
        key = email.lower()
        if key in seen:
            continue
        seen.add(key)
        output.append(email)
    return output


def absint(value: object) -> int:
    """Coerce to a non-negative integer, treating junk as zero."""
    try:
        return abs(int(value))  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return 0


def sanitize_depth(value: object) -> str:
    return value if value in DEPTHS else DEFAULT_DEPTH  # type: ignore[return-value]


def sanitize_threshold(value: object) -> str:
    return value if value in THRESHOLDS else DEFAULT_THRESHOLD  # type: ignore[return-value]


def sanitize_integrations(value: object) -> tuple[str, ...]:
    """Keep only known integration names, in canonical order.

    Accepts either an iterable of names or a ``{name: enabled}`` mapping.
    """
    if isinstance(value, dict):
        enabled = {name for name, flag in value.items() if flag}
    elif isinstance(value, (list, tuple, set, frozenset)):
        enabled = {str(name) for name in value}
    else:
        return tuple()
    return tuple(name for name in INTEGRATIONS if name in enabled)


def validate_runtime_constraints(
    *,
    depth: str,
    action_threshold: str,
    policy_id: int,
    timeout: float,
    cache_ttl: int,
    batch_size: int,
    limit: int,
) -> None:
    """Validate CLI/runtime configuration and raise ConfigError on invalid values."""
    if depth not in DEPTHS:
        raise ConfigError("--depth must be 'standard' or 'enhanced'.")
    if action_threshold not in THRESHOLDS:
        raise ConfigError("Block threshold must be 'reject' or 'caution'.")
    if policy_id < 0:
        raise ConfigError("Policy ID must be >= 0.")
    if timeout <= 0:
        raise ConfigError("--timeout must be > 0.")
    if cache_ttl < 0:
        raise ConfigError("Cache TTL must be >= 0.")
    if batch_size < 1:
        raise ConfigError("--batch must be >= 1.")
    if limit < 0:
        raise ConfigError("--limit must be >= 0.")
