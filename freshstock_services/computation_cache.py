"""
freshstock_services.computation_cache -- TTL cache with a per-key throttle.

Responsibility:
    Memoize expensive computations by logical key for a short TTL, and
    stop request storms from recomputing the same key concurrently or
    repeatedly within a cooldown window.

Architecture position:
    Services -- shared utility.  Reads time only through the injected
    Clock.  Replaceable by a distributed cache behind the same
    ``get_or_compute`` interface.

Invariants enforced:
    - A valid entry is returned without calling the compute function.
    - With no valid entry, a key that is in flight or was computed within
      the cooldown window raises ``ThrottledError``.
    - Failed computations are not cached, do not start a cooldown, and
      release the in-flight mark.
    - The maps are guarded by one lock; computation runs outside it.

Failure modes:
    - ThrottledError (soft signal; ``peek_stale`` offers the last value).
    - Whatever the compute function raised.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Mapping, TypeVar

from freshstock_kernel.domain.clock import Clock
from freshstock_kernel.exceptions import ThrottledError
from freshstock_kernel.logging_config import get_logger

logger = get_logger("services.computation_cache")

T = TypeVar("T")


@dataclass(frozen=True)
class CacheKey:
    """Logical operation name plus parameters, e.g. ``transfer_recommendations:top_n=50``."""
    operation: str
    params: Mapping[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        if not self.params:
            return self.operation
        rendered = ",".join(f"{k}={self.params[k]}" for k in sorted(self.params))
        return f"{self.operation}:{rendered}"


@dataclass
class _Entry:
    value: Any
    computed_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    throttled: int
    failures: int
    entries: int
    in_flight: int
    stale: int = 0
    cooling_down: int = 0


class ComputationCache:
    """
    In-process cache and throttle.

    Contract:
        Keys are ``CacheKey`` values or plain strings.
    Guarantees:
        - At most one computation per key runs at any time.
        - Cooldown marks are dropped once they lapse, and at most
          ``max_stale_entries`` stale values are kept (oldest dropped first).
    """

    def __init__(
        self,
        clock: Clock,
        ttl_seconds: int = 300,
        cooldown_seconds: int = 30,
        max_stale_entries: int = 64,
    ):
        self._clock = clock
        self.ttl_seconds = ttl_seconds
        self.cooldown_seconds = cooldown_seconds
        self.max_stale_entries = max_stale_entries
        self._entries: dict[str, _Entry] = {}
        self._stale: dict[str, _Entry] = {}
        self._last_computed: dict[str, datetime] = {}
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._throttled = 0
        self._failures = 0

    def get_or_compute(
        self,
        key: CacheKey | str,
        fn: Callable[[], T],
        ttl: int | None = None,
    ) -> T:
        """
        Return the cached value for ``key`` or compute and cache it.

        Raises:
            ThrottledError: no valid entry and the key is in flight or
                inside its cooldown window.
        """
        name = str(key)
        with self._lock:
            now = self._clock.now()
            self._prune(now)
            entry = self._entries.get(name)
            if entry is not None and now < entry.expires_at:
                self._hits += 1
                logger.debug("cache_hit", extra={"key": name})
                return entry.value
            if entry is not None:
                self._retire(name, self._entries.pop(name))

            if name in self._in_flight:
                self._throttled += 1
                logger.info("cache_throttled", extra={"key": name, "in_flight": True})
                raise ThrottledError(name, Decimal(self.cooldown_seconds), in_flight=True)

            last = self._last_computed.get(name)
            if last is not None:
                elapsed = Decimal(str((now - last).total_seconds()))
                if elapsed < self.cooldown_seconds:
                    self._throttled += 1
                    retry_after = Decimal(self.cooldown_seconds) - elapsed
                    logger.info(
                        "cache_throttled",
                        extra={"key": name, "retry_after_seconds": str(retry_after)},
                    )
                    raise ThrottledError(name, retry_after)

            self._misses += 1
            self._in_flight.add(name)

        try:
            value = fn()
        except Exception:
            with self._lock:
                self._in_flight.discard(name)
                self._failures += 1
            logger.warning("cache_compute_failed", extra={"key": name})
            raise

        with self._lock:
            now = self._clock.now()
            lifetime = self.ttl_seconds if ttl is None else ttl
            self._entries[name] = _Entry(value, now, now + timedelta(seconds=lifetime))
            self._stale.pop(name, None)
            self._last_computed[name] = now
            self._in_flight.discard(name)
        logger.info("cache_computed", extra={"key": name, "ttl_seconds": lifetime})
        return value

    def peek_stale(self, key: CacheKey | str) -> Any | None:
        """Last computed value for ``key``, valid or not; None if never computed."""
        name = str(key)
        with self._lock:
            entry = self._entries.get(name) or self._stale.get(name)
        return entry.value if entry is not None else None

    def invalidate(self, key: CacheKey | str) -> bool:
        """
        Drop the valid entry for ``key``.  The value stays available to
        ``peek_stale`` and the cooldown still applies.
        """
        name = str(key)
        with self._lock:
            entry = self._entries.pop(name, None)
            if entry is not None:
                self._retire(name, entry)
        if entry is not None:
            logger.info("cache_invalidated", extra={"key": name})
        return entry is not None

    def invalidate_prefix(self, operation: str) -> int:
        """Drop every entry of ``operation`` regardless of parameters."""
        with self._lock:
            names = [
                n for n in self._entries
                if n == operation or n.startswith(f"{operation}:")
            ]
            for name in names:
                self._retire(name, self._entries.pop(name))
        if names:
            logger.info(
                "cache_invalidated",
                extra={"operation": operation, "entries": len(names)},
            )
        return len(names)

    # Caller holds self._lock.

    def _retire(self, name: str, entry: _Entry) -> None:
        self._stale.pop(name, None)
        self._stale[name] = entry
        while len(self._stale) > self.max_stale_entries:
            del self._stale[next(iter(self._stale))]

    def _prune(self, now: datetime) -> None:
        cutoff = now - timedelta(seconds=self.cooldown_seconds)
        for name in [n for n, at in self._last_computed.items() if at <= cutoff]:
            del self._last_computed[name]
        for name in [n for n, e in self._entries.items() if now >= e.expires_at]:
            self._retire(name, self._entries.pop(name))

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                throttled=self._throttled,
                failures=self._failures,
                entries=len(self._entries),
                in_flight=len(self._in_flight),
                stale=len(self._stale),
                cooling_down=len(self._last_computed),
            )
