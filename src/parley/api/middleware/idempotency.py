"""In-memory idempotency store for webhook event deduplication."""

from __future__ import annotations

import time

import structlog

logger = structlog.get_logger()


class IdempotencyStore:
    """Remembers event keys for ``ttl_s`` seconds; expired keys are evicted lazily."""

    def __init__(self, ttl_s: float = 300.0, cleanup_interval_s: float = 60.0) -> None:
        self.ttl_s = ttl_s
        self.cleanup_interval_s = cleanup_interval_s
        self._seen: dict[str, float] = {}
        self._last_cleanup = time.monotonic()

    def is_duplicate(self, key: str) -> bool:
        """Return True if ``key`` was seen within the TTL; otherwise remember it."""
        now = time.monotonic()
        if now - self._last_cleanup >= self.cleanup_interval_s:
            self.cleanup(now)

        seen_at = self._seen.get(key)
        if seen_at is not None and now - seen_at <= self.ttl_s:
            logger.debug("idempotency.duplicate", key=key)
            return True
        self._seen[key] = now
        return False

    def cleanup(self, now: float | None = None) -> int:
        now = time.monotonic() if now is None else now
        expired = [key for key, ts in self._seen.items() if now - ts > self.ttl_s]
        for key in expired:
            del self._seen[key]
        self._last_cleanup = now
        if expired:
            logger.debug("idempotency.cleanup", evicted=len(expired), remaining=len(self._seen))
        return len(expired)

    def forget(self, key: str) -> None:
        """Drop ``key`` so a retried event is accepted again."""
        self._seen.pop(key, None)

    def __len__(self) -> int:
        return len(self._seen)
