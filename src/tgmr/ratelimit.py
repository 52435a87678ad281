"""Per-identity request limiting with fixed windows and cooldowns."""

from __future__ import annotations

import time
from collections.abc import Callable, Hashable
from dataclasses import dataclass

from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_WINDOW_S = 60.0


@dataclass(slots=True)
class RateLimitEntry:
    count: int
    window_start: float
    cooldown_until: float = 0.0


class RateLimiter:
    """Tracks request counts per identity within fixed one-minute windows.

    `can_make_request` must be called once per incoming request, and
    `record_request` only when the request is actually processed. Checking an
    identity that is already at its limit (re)arms the cooldown from the
    current time, so polling the check keeps the identity locked out.
    """

    __slots__ = ("_limit", "_cooldown_s", "_window_s", "_clock", "_entries", "_last_sweep")

    def __init__(
        self,
        limit: int,
        cooldown_s: float,
        *,
        window_s: float = DEFAULT_WINDOW_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        if cooldown_s < 0 or window_s <= 0:
            raise ValueError("cooldown must be >= 0 and window must be positive")
        self._limit = limit
        self._cooldown_s = float(cooldown_s)
        self._window_s = float(window_s)
        self._clock = clock
        self._entries: dict[Hashable, RateLimitEntry] = {}
        self._last_sweep = clock()

    @property
    def limit(self) -> int:
        return self._limit

    def __len__(self) -> int:
        return len(self._entries)

    def can_make_request(self, identity: Hashable) -> bool:
        now = self._clock()
        entry = self._entry(identity, now)

        if entry.cooldown_until > now:
            logger.info(
                "ratelimit.cooldown",
                identity=identity,
                seconds_left=round(entry.cooldown_until - now, 1),
            )
            return False

        if entry.count >= self._limit:
            entry.cooldown_until = now + self._cooldown_s
            logger.info(
                "ratelimit.exceeded",
                identity=identity,
                limit=self._limit,
                cooldown_s=self._cooldown_s,
            )
            return False

        return True

    def record_request(self, identity: Hashable) -> None:
        now = self._clock()
        entry = self._entry(identity, now)
        entry.count += 1
        logger.debug(
            "ratelimit.recorded", identity=identity, count=entry.count, limit=self._limit
        )

    def cooldown_remaining(self, identity: Hashable) -> float:
        entry = self._entries.get(identity)
        if entry is None:
            return 0.0
        return max(0.0, entry.cooldown_until - self._clock())

    def _entry(self, identity: Hashable, now: float) -> RateLimitEntry:
        self._maybe_sweep(now)
        entry = self._entries.get(identity)
        if entry is None:
            entry = RateLimitEntry(count=0, window_start=now)
            self._entries[identity] = entry
            return entry
        if now - entry.window_start >= self._window_s:
            entry.count = 0
            entry.window_start = now
        return entry

    def _is_idle(self, entry: RateLimitEntry, now: float) -> bool:
        return (
            now - entry.window_start >= self._window_s and entry.cooldown_until <= now
        )

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep < self._window_s:
            return
        self._last_sweep = now
        idle = [key for key, entry in self._entries.items() if self._is_idle(entry, now)]
        for key in idle:
            del self._entries[key]
        if idle:
            logger.debug("ratelimit.evicted", count=len(idle), remaining=len(self._entries))
