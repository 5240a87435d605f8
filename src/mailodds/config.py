"""Runtime configuration model."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .models import OptionStore
from .validation import (
    DEFAULT_DEPTH,
    DEFAULT_THRESHOLD,
    absint,
    sanitize_depth,
    sanitize_integrations,
    sanitize_threshold,
    validate_runtime_constraints,
)

VERSION = "1.0.0"
DEFAULT_API_BASE = "https://api.mailodds.com"
DEFAULT_USER_AGENT = f"MailOdds-Python/{VERSION}"
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_CACHE_TTL = 24 * 60 * 60
DEFAULT_BATCH_SIZE = 50
DEFAULT_STATE_FILE = ".mailodds.json"


@dataclass(frozen=True)
class MailOddsConfig:
    """Validated configuration shared by the client, the form guard and the batch runner."""

    api_key: str = ""
    api_base: str = DEFAULT_API_BASE
    depth: str = DEFAULT_DEPTH
    policy_id: int = 0
    action_threshold: str = DEFAULT_THRESHOLD
    timeout: float = DEFAULT_REQUEST_TIMEOUT
    cache_ttl: int = DEFAULT_CACHE_TTL
    batch_size: int = DEFAULT_BATCH_SIZE
    limit: int = 0
    integrations: tuple[str, ...] = ()
    cron_enabled: bool = False
    user_agent: str = DEFAULT_USER_AGENT
    state_file: str = DEFAULT_STATE_FILE

    def __post_init__(self) -> None:
        validate_runtime_constraints(
            depth=self.depth,
            action_threshold=self.action_threshold,
            policy_id=self.policy_id,
            timeout=self.timeout,
            cache_ttl=self.cache_ttl,
            batch_size=self.batch_size,
            limit=self.limit,
        )

    @property
    def test_mode(self) -> bool:
        return self.api_key.startswith("mo_test_")


def load_config(options: OptionStore, **overrides: Any) -> MailOddsConfig:
    """Build a config from stored ``mailodds_*`` options, letting non-None overrides win.

    Stored values are sanitized the same way the settings form sanitizes them;
    overrides are validated strictly.
    """
    values: dict[str, Any] = {
        "api_key": str(options.get("mailodds_api_key", "") or "").strip(),
        "depth": sanitize_depth(options.get("mailodds_depth", DEFAULT_DEPTH)),
        "policy_id": absint(options.get("mailodds_policy_id", 0)),
        "action_threshold": sanitize_threshold(
            options.get("mailodds_action_threshold", DEFAULT_THRESHOLD)
        ),
        "integrations": sanitize_integrations(options.get("mailodds_integrations", {})),
        "cron_enabled": bool(options.get("mailodds_cron_enabled", False)),
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    return MailOddsConfig(**values)
