"""Protocols and lightweight model types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

STATUSES = ("valid", "invalid", "catch_all", "unknown", "do_not_mail")
ACTIONS = ("accept", "reject", "accept_with_caution", "retry_later")


class OptionStore(Protocol):
    """Contract for named-value storage (settings, stats, cached entries)."""

    def get(self, name: str, default: Any = None) -> Any:
        """Return the stored value or ``default``."""

    def set(self, name: str, value: Any) -> None:
        """Store a value under ``name``."""

    def delete(self, name: str) -> None:
        """Remove ``name`` if present."""

    def names(self) -> list[str]:
        """Return every stored name."""


class CacheStore(Protocol):
    """Contract for key/value caches with expiry."""

    def get(self, key: str) -> Any | None:
        """Return the cached value or None on a miss."""

    def set(self, key: str, value: Any, ttl: int) -> None:
        """Store a value for ``ttl`` seconds."""


class UserDirectory(Protocol):
    """Contract for the identity source walked by the batch runner."""

    def list_unvalidated(self, page_size: int) -> list[DirectoryUser]:
        """Return up to ``page_size`` users without a validation marker."""

    def write_result(self, user_id: int, marker: ValidationMarker) -> None:
        """Attach a validation marker to a user."""

    def count_validated(self) -> int:
        """Return how many users carry a marker."""


class ValidationClientProtocol(Protocol):
    """Contract for MailOdds API integration."""

    def has_key(self) -> bool:
        """Return True when an API key is configured."""

    def validate(
        self,
        email: str,
        *,
        depth: str | None = None,
        policy_id: int | None = None,
        skip_cache: bool = False,
    ) -> ValidationResult:
        """Validate one email address."""

    def validate_batch(
        self, emails: list[str], *, depth: str | None = None, policy_id: int | None = None
    ) -> list[ValidationResult]:
        """Validate several email addresses in one call."""


@dataclass(frozen=True)
class ValidationRequest:
    """One outgoing validation call."""

    email: str
    depth: str
    policy_id: int = 0

    def to_body(self) -> dict[str, Any]:
        return request_body({"email": self.email}, self.depth, self.policy_id)


def request_body(body: dict[str, Any], depth: str, policy_id: int) -> dict[str, Any]:
    """Add the optional depth/policy fields the API expects.

    ``enhanced`` is the server default and is never sent.
    """
    if depth == "standard":
        body["depth"] = "standard"
    if policy_id > 0:
        body["policy_id"] = policy_id
    return body


@dataclass(frozen=True)
class ValidationResult:
    """Validation verdict for one email, as returned by the API or the cache."""

    email: str
    status: str
    action: str
    sub_status: str | None = None
    free_provider: bool = False
    disposable: bool = False
    role_account: bool = False
    mx_found: bool = False
    depth: str = ""
    processed_at: str = ""
    cached: bool = False
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, payload: dict[str, Any], *, cached: bool = False) -> ValidationResult:
        sub_status = payload.get("sub_status")
        return cls(
            email=str(payload.get("email") or ""),
            status=str(payload.get("status") or "unknown"),
            action=str(payload.get("action") or ""),
            sub_status=str(sub_status) if sub_status else None,
            free_provider=bool(payload.get("free_provider", False)),
            disposable=bool(payload.get("disposable", False)),
            role_account=bool(payload.get("role_account", False)),
            mx_found=bool(payload.get("mx_found", False)),
            depth=str(payload.get("depth") or ""),
            processed_at=str(payload.get("processed_at") or ""),
            cached=cached,
            raw=dict(payload),
        )

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.raw)
        data.update(
            {
                "email": self.email,
                "status": self.status,
                "action": self.action,
                "sub_status": self.sub_status,
                "free_provider": self.free_provider,
                "disposable": self.disposable,
                "role_account": self.role_account,
                "mx_found": self.mx_found,
                "depth": self.depth,
                "processed_at": self.processed_at,
            }
        )
        if self.cached:
            data["cached"] = True
        return data


@dataclass(frozen=True)
class DirectoryUser:
    """A user identity as listed by the directory."""

    id: int
    email: str


@dataclass(frozen=True)
class ValidationMarker:
    """Per-user record written back after bulk validation."""

    status: str
    action: str
    validated_at: str

    def to_dict(self) -> dict[str, str]:
        return {"status": self.status, "action": self.action, "validated_at": self.validated_at}


@dataclass
class BulkSummary:
    """Tally of one batch-runner invocation."""

    processed: int = 0
    errors: int = 0
    pages: int = 0
    by_status: dict[str, int] = field(default_factory=lambda: dict.fromkeys(STATUSES, 0))

    @property
    def attempted(self) -> int:
        return self.processed + self.errors


@dataclass(frozen=True)
class PageOutcome:
    """Result of one incremental bulk step."""

    done: bool
    processed: int
    batch: int = 0
    error: str | None = None
