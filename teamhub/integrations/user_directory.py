"""
User Directory gateway.

All outbound HTTP calls to the identity / profile service go through this
class. Direct ``requests`` calls in services or blueprints are FORBIDDEN.

The directory is a consumed collaborator whose only job here is filling the
denormalised display snapshots on ledger records, so every failure is
absorbed: ``resolve_user`` returns ``None`` and the caller stores whatever it
got. The reconciliation job back-fills missing snapshots later.

  - Timeout: short (USER_DIRECTORY_TIMEOUT, default 2 s), no retries
  - Cache: in-memory TTL cache, misses are not cached
  - Circuit breaker: ≥5 failures in 60 s → 30 s pause

Testability: pass a fake ``session`` to UserDirectoryGateway() in tests
instead of letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone

import requests

logger = logging.getLogger(__name__)

# ── Circuit breaker constants ──────────────────────────────────────────────
_CB_FAILURE_THRESHOLD = 5          # failures within window before opening
_CB_WINDOW_SECONDS = 60            # failure counting window (seconds)
_CB_OPEN_DURATION_SECONDS = 30     # how long circuit stays open

_DEFAULT_TIMEOUT = 2.0
_DEFAULT_CACHE_TTL = 300
_DEFAULT_CACHE_MAX_ENTRIES = 10_000

SNAPSHOT_FIELDS = ("firstName", "lastName", "university", "profilePicture")


def to_snapshot(profile: dict) -> dict:
    """Keep only the display fields the ledger denormalises."""
    return {key: profile.get(key) for key in SNAPSHOT_FIELDS}


def display_name(snapshot: dict | None, fallback: str = "A user") -> str:
    if not snapshot:
        return fallback
    name = f"{snapshot.get('firstName') or ''} {snapshot.get('lastName') or ''}".strip()
    return name or fallback


class UserDirectoryGateway:
    """Best-effort ``user_id → display profile`` lookup.

    Usage:
        gateway = UserDirectoryGateway(base_url="https://users.internal/api")
        snapshot = gateway.resolve_user("u-42")   # dict or None
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        cache_ttl: int = _DEFAULT_CACHE_TTL,
        cache_max_entries: int = _DEFAULT_CACHE_MAX_ENTRIES,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.cache_max_entries = max(int(cache_max_entries), 1)
        self._session: requests.Session | None = session

        # user_id → (expires_at_monotonic, snapshot), oldest insert first
        self._cache: dict[str, tuple[float, dict]] = {}

        self._cb_failures: list[datetime] = []
        self._cb_open_until: datetime | None = None

    @classmethod
    def from_config(cls, config, session: requests.Session | None = None) -> "UserDirectoryGateway":
        return cls(
            config.get("USER_DIRECTORY_URL", ""),
            timeout=float(config.get("USER_DIRECTORY_TIMEOUT", _DEFAULT_TIMEOUT)),
            cache_ttl=int(config.get("USER_DIRECTORY_CACHE_TTL", _DEFAULT_CACHE_TTL)),
            cache_max_entries=int(config.get("USER_DIRECTORY_CACHE_MAX_ENTRIES", _DEFAULT_CACHE_MAX_ENTRIES)),
            session=session,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── Cache ────────────────────────────────────────────────────────────────

    def _cached(self, user_id: str) -> dict | None:
        entry = self._cache.get(user_id)
        if not entry:
            return None
        expires_at, snapshot = entry
        if time.monotonic() >= expires_at:
            self._cache.pop(user_id, None)
            return None
        return snapshot

    def _store(self, user_id: str, snapshot: dict) -> None:
        now = time.monotonic()
        expired = [uid for uid, (expires_at, _) in self._cache.items() if now >= expires_at]
        for uid in expired:
            del self._cache[uid]
        self._cache.pop(user_id, None)
        while len(self._cache) >= self.cache_max_entries:
            del self._cache[next(iter(self._cache))]
        self._cache[user_id] = (now + self.cache_ttl, snapshot)

    def clear_cache(self) -> None:
        self._cache.clear()

    # ── Circuit breaker ───────────────────────────────────────────────────────

    def _circuit_closed(self) -> bool:
        """Return True if the circuit allows calls; False if open (paused)."""
        now = datetime.now(timezone.utc)
        if self._cb_open_until and now < self._cb_open_until:
            return False

        window_start = now - timedelta(seconds=_CB_WINDOW_SECONDS)
        self._cb_failures = [f for f in self._cb_failures if f >= window_start]

        if len(self._cb_failures) >= _CB_FAILURE_THRESHOLD:
            self._cb_open_until = now + timedelta(seconds=_CB_OPEN_DURATION_SECONDS)
            self._cb_failures.clear()
            logger.error(
                "User directory circuit opened: %d failures in %ds window",
                _CB_FAILURE_THRESHOLD,
                _CB_WINDOW_SECONDS,
            )
            return False
        return True

    def _record_failure(self) -> None:
        self._cb_failures.append(datetime.now(timezone.utc))

    def _record_success(self) -> None:
        self._cb_failures.clear()
        self._cb_open_until = None

    # ── Lookup ────────────────────────────────────────────────────────────────

    def resolve_user(self, user_id: str) -> dict | None:
        """Return the display snapshot for ``user_id`` or None on any failure."""
        if not self.enabled or not user_id:
            return None

        user_id = str(user_id)
        cached = self._cached(user_id)
        if cached is not None:
            return cached

        if not self._circuit_closed():
            logger.debug("User directory circuit open, skipping lookup for %s", user_id)
            return None

        url = f"{self.base_url}/users/{user_id}"
        t0 = time.perf_counter()
        try:
            resp = self.session.get(url, timeout=self.timeout, headers={"Accept": "application/json"})
        except requests.RequestException as exc:
            self._record_failure()
            logger.warning("User directory lookup failed for %s: %s", user_id, exc)
            return None
        duration_ms = (time.perf_counter() - t0) * 1000

        if resp.status_code == 404:
            # Unknown user is an answer, not an outage
            self._record_success()
            return None
        if resp.status_code >= 400:
            self._record_failure()
            logger.warning(
                "User directory returned HTTP %s for %s", resp.status_code, user_id,
                extra={"duration_ms": duration_ms},
            )
            return None

        try:
            body = resp.json()
        except ValueError:
            self._record_failure()
            logger.warning("User directory returned non-JSON body for %s", user_id)
            return None

        self._record_success()
        profile = body.get("data", body) if isinstance(body, dict) else {}
        snapshot = to_snapshot(profile if isinstance(profile, dict) else {})
        self._store(user_id, snapshot)
        return snapshot

    def resolve_many(self, user_ids) -> dict[str, dict | None]:
        return {str(uid): self.resolve_user(uid) for uid in dict.fromkeys(user_ids)}

    def init_app(self, app) -> None:
        app.extensions["user_directory"] = self


def get_user_directory() -> UserDirectoryGateway:
    """Return the gateway bound to the current app (a disabled one if unset)."""
    from flask import current_app

    gateway = current_app.extensions.get("user_directory")
    if gateway is None:
        gateway = UserDirectoryGateway()
        current_app.extensions["user_directory"] = gateway
    return gateway
