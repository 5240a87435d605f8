"""MailOdds API client."""

from __future__ import annotations

import logging
from typing import Any

from requests import Session
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException
from urllib3.util.retry import Retry

from .config import (
    DEFAULT_API_BASE,
    DEFAULT_CACHE_TTL,
    DEFAULT_REQUEST_TIMEOUT,
    MailOddsConfig,
)
from .errors import (
    ApiError,
    ConfigError,
    InvalidEmailError,
    NetworkError,
    NoApiKeyError,
    NoEmailsError,
    ResponseDecodeError,
)
from .models import CacheStore, OptionStore, ValidationRequest, ValidationResult, request_body
from .stats import DailyStatsStore
from .store import TransientCache, cache_key
from .validation import DEFAULT_DEPTH, DEPTHS, absint, normalize_emails, sanitize_email

TEST_KEY_PREFIX = "mo_test_"


def make_session(user_agent: str) -> Session:
    """Create a requests session that never retries.

    Every call is single-attempt so callers can fail open quickly.
    """
    session = Session()
    session.headers.update({"User-Agent": user_agent})
    adapter = HTTPAdapter(max_retries=Retry(total=0, connect=0, read=0, redirect=0))
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class MailOddsClient:
    """Single-call wrapper around the validation API with result caching and daily stats."""

    def __init__(
        self,
        *,
        session: Session,
        api_key: str,
        cache: CacheStore,
        stats: DailyStatsStore,
        logger: logging.Logger,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        cache_ttl: int = DEFAULT_CACHE_TTL,
        depth: str = DEFAULT_DEPTH,
        policy_id: int = 0,
    ) -> None:
        self._session = session
        self._api_key = api_key
        self._cache = cache
        self._stats = stats
        self._logger = logger
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._cache_ttl = cache_ttl
        self._depth = depth
        self._policy_id = policy_id

    def has_key(self) -> bool:
        return bool(self._api_key)

    def is_test_mode(self) -> bool:
        return self._api_key.startswith(TEST_KEY_PREFIX)

    def validate(
        self,
        email: str,
        *,
        depth: str | None = None,
        policy_id: int | None = None,
        skip_cache: bool = False,
    ) -> ValidationResult:
        """Validate one address, serving repeat lookups from the cache.

        Cache hits are flagged ``cached=True`` and are not counted in the daily stats.
        """
        email = sanitize_email(email)
        if not email:
            raise InvalidEmailError("Invalid email address.")
        if not self.has_key():
            raise NoApiKeyError("MailOdds API key not configured.")

        request = ValidationRequest(
            email=email,
            depth=self._resolve_depth(depth),
            policy_id=self._policy_id if policy_id is None else absint(policy_id),
        )
        key = cache_key(request.email, request.depth)

        if not skip_cache:
            cached = self._cache.get(key)
            if isinstance(cached, dict):
                self._logger.debug("Cache hit for %s (%s)", email, request.depth)
                return ValidationResult.from_payload(cached, cached=True)

        payload = self._post("/v1/validate", request.to_body())

        if not skip_cache and "status" in payload:
            self._cache.set(key, payload, self._cache_ttl)
        result = ValidationResult.from_payload(payload)
        self._stats.record(result.status)
        return result

    def validate_batch(
        self, emails: list[str], *, depth: str | None = None, policy_id: int | None = None
    ) -> list[ValidationResult]:
        """Validate several addresses in one request.

        The cache is never read here; every returned item is cached and counted.
        """
        if not self.has_key():
            raise NoApiKeyError("MailOdds API key not configured.")
        cleaned = normalize_emails(emails)
        if not cleaned:
            raise NoEmailsError("No valid emails provided.")

        depth = self._resolve_depth(depth)
        policy_id = self._policy_id if policy_id is None else absint(policy_id)
        body = request_body({"emails": cleaned}, depth, policy_id)
        payload = self._post("/v1/validate/batch", body)

        items = payload.get("results", [])
        results: list[ValidationResult] = []
        for item in items if isinstance(items, list) else []:
            if not isinstance(item, dict):
                continue
            if item.get("email") and "status" in item:
                self._cache.set(cache_key(str(item["email"]), depth), item, self._cache_ttl)
                self._stats.record(str(item["status"]))
            results.append(ValidationResult.from_payload(item))
        return results

    def _resolve_depth(self, depth: str | None) -> str:
        if not depth:
            return self._depth
        if depth not in DEPTHS:
            raise ConfigError(f"Unknown validation depth: {depth!r}")
        return depth

    def _post(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        self._logger.debug("POST %s", endpoint)
        try:
            response = self._session.post(
                self._api_base + endpoint,
                json=body,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self._timeout,
            )
        except RequestException as exc:
            raise NetworkError(str(exc)) from exc

        try:
            data = response.json()
        except ValueError:
            data = None

        if not 200 <= response.status_code < 300:
            message = "API request failed."
            if isinstance(data, dict) and data.get("error"):
                message = str(data["error"])
            raise ApiError(message, status=response.status_code)
        if not isinstance(data, dict):
            raise ResponseDecodeError("API returned a malformed response.")
        return data


def build_client(
    config: MailOddsConfig,
    *,
    options: OptionStore,
    logger: logging.Logger,
    session: Session | None = None,
) -> MailOddsClient:
    """Wire a client to option-backed cache and stats stores."""
    return MailOddsClient(
        session=session or make_session(config.user_agent),
        api_key=config.api_key,
        cache=TransientCache(options),
        stats=DailyStatsStore(options),
        logger=logger,
        api_base=config.api_base,
        timeout=config.timeout,
        cache_ttl=config.cache_ttl,
        depth=config.depth,
        policy_id=config.policy_id,
    )
