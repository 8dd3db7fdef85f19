"""Per-key fixed-window rate limiter with an escalating cool-down block.

Keys are ``<scope>:<identity>``. The scope picks a fixed configuration:

| scope   | window | max attempts | block            |
|---------|--------|--------------|------------------|
| login   | 1 min  | 5            | 5 min            |
| process | 5 min  | 10           | (window) 5 min   |
| default | 1 min  | 20           | (window) 1 min   |

Once a key has used its quota inside a live window it is blocked until
``block_duration`` has passed since its last counted attempt. Windows and
quotas are constants, not environment settings.

Usage:
    limiter = RateLimiter()
    if not limiter.check(f"login:{email}"):
        info = limiter.info(f"login:{email}")
        ...  # tell the user when to come back
"""

import logging
import sys
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta

from komikai.core.clock import Clock, utc_now

logger = logging.getLogger(__name__)

LOGIN_SCOPE = "login"
PROCESS_SCOPE = "process"
DEFAULT_SCOPE = "default"


@dataclass(frozen=True)
class RateLimitConfig:
    """Quota for one scope.

    Attributes:
        window: Length of a counting window.
        max_attempts: Attempts allowed inside one window.
        block_duration: Cool-down once the quota is used. Falls back to
            ``window`` when None.
    """

    window: timedelta
    max_attempts: int
    block_duration: timedelta | None = None

    @property
    def effective_block_duration(self) -> timedelta:
        """Block duration with the window fallback applied."""
        if self.block_duration is None:
            return self.window
        return self.block_duration


DEFAULT_CONFIGS: Mapping[str, RateLimitConfig] = {
    LOGIN_SCOPE: RateLimitConfig(
        window=timedelta(minutes=1),
        max_attempts=5,
        block_duration=timedelta(minutes=5),
    ),
    PROCESS_SCOPE: RateLimitConfig(
        window=timedelta(minutes=5),
        max_attempts=10,
    ),
    DEFAULT_SCOPE: RateLimitConfig(
        window=timedelta(minutes=1),
        max_attempts=20,
    ),
}


def scope_for_key(key: str) -> str:
    """Derive the scope of a rate-limit key from its prefix."""
    if key.startswith(f"{LOGIN_SCOPE}:"):
        return LOGIN_SCOPE
    if key.startswith(f"{PROCESS_SCOPE}:"):
        return PROCESS_SCOPE
    return DEFAULT_SCOPE


@dataclass
class RateLimitEntry:
    """Mutable counter for one key.

    ``count`` only means something relative to ``window_reset_at``; once that
    moment has passed the entry is reset before it is written again.
    """

    count: int
    window_reset_at: datetime
    last_attempt_at: datetime


@dataclass(frozen=True)
class RateLimitInfo:
    """Read-only projection of a key's state for user-facing messages.

    Attributes:
        remaining: Attempts left in the current window (never negative).
        reset_at: Absolute end of the current window.
        blocked: Whether the key is inside its cool-down block.
    """

    remaining: int
    reset_at: datetime
    blocked: bool


@dataclass(frozen=True)
class RateLimitStatus:
    """Diagnostic snapshot of the limiter.

    Attributes:
        total_entries: Live keys after a sweep.
        memory_estimate_bytes: Rough size of the key map and its entries.
    """

    total_entries: int
    memory_estimate_bytes: int


class RateLimiter:
    """Thread-safe in-memory rate limiter.

    Args:
        configs: Scope -> config mapping. Must contain a "default" entry.
        clock: Time source.
    """

    def __init__(
        self,
        configs: Mapping[str, RateLimitConfig] | None = None,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._configs = dict(configs if configs is not None else DEFAULT_CONFIGS)
        if DEFAULT_SCOPE not in self._configs:
            msg = f"Rate limit configs must include a '{DEFAULT_SCOPE}' scope"
            raise ValueError(msg)
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def config_for(self, key: str) -> RateLimitConfig:
        """Config that applies to a key."""
        return self._configs.get(scope_for_key(key), self._configs[DEFAULT_SCOPE])

    def check(self, key: str) -> bool:
        """Record an attempt for a key and decide whether it may proceed.

        Order of checks:
        1. Unknown key: start a window with count 1, allow.
        2. Window elapsed: start a fresh window with count 1, allow.
        3. Quota used: deny while the block lasts (nothing is recorded);
           once it has lapsed start a fresh window, allow.
        4. Otherwise count the attempt, allow.

        Window expiry is checked before the quota so a key past its window
        is never reported as blocked.

        Args:
            key: Composite "<scope>:<identity>" key.

        Returns:
            True if the attempt is allowed, False if rate limited.
        """
        config = self.config_for(key)
        now = self._clock()

        with self._lock:
            entry = self._entries.get(key)

            if entry is None:
                self._entries[key] = self._fresh_entry(config, now)
                return True

            if entry.window_reset_at < now:
                self._reset(entry, config, now)
                return True

            if entry.count >= config.max_attempts:
                if now - entry.last_attempt_at < config.effective_block_duration:
                    logger.info("Rate limit hit for %s", key)
                    return False
                self._reset(entry, config, now)
                return True

            entry.count += 1
            entry.last_attempt_at = now
            return True

    def info(self, key: str) -> RateLimitInfo:
        """Project a key's state without touching it.

        A missing key, or one whose window has elapsed, reports the full
        quota, a window starting now, and no block.
        """
        config = self.config_for(key)
        now = self._clock()

        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.window_reset_at < now:
                return RateLimitInfo(
                    remaining=config.max_attempts,
                    reset_at=now + config.window,
                    blocked=False,
                )
            count = entry.count
            reset_at = entry.window_reset_at
            last_attempt_at = entry.last_attempt_at

        blocked = (
            count >= config.max_attempts
            and now - last_attempt_at < config.effective_block_duration
        )
        return RateLimitInfo(
            remaining=max(0, config.max_attempts - count),
            reset_at=reset_at,
            blocked=blocked,
        )

    def retry_after(self, key: str) -> timedelta:
        """Time until a key with a used-up quota is accepted again.

        Whichever comes first lifts the denial: the window elapsing or the
        block lapsing. Zero when the quota is not used up.
        """
        config = self.config_for(key)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.count < config.max_attempts:
                return timedelta(0)
            unblock_at = min(
                entry.window_reset_at,
                entry.last_attempt_at + config.effective_block_duration,
            )
        return max(timedelta(0), unblock_at - now)

    def sweep(self) -> int:
        """Remove entries whose window has elapsed.

        Best-effort garbage collection; ``check`` resets stale entries on its
        own, so correctness never depends on this running.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        with self._lock:
            stale = [
                key
                for key, entry in self._entries.items()
                if entry.window_reset_at < now
            ]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Swept %d stale rate limit entries", len(stale))
        return len(stale)

    def status(self) -> RateLimitStatus:
        """Sweep, then report entry count and an approximate memory footprint."""
        self.sweep()
        with self._lock:
            total = len(self._entries)
            size = sys.getsizeof(self._entries) + sum(
                sys.getsizeof(key) + sys.getsizeof(entry)
                for key, entry in self._entries.items()
            )
        return RateLimitStatus(total_entries=total, memory_estimate_bytes=size)

    def reset(self, key: str | None = None) -> None:
        """Forget one key, or every key when None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    @staticmethod
    def _fresh_entry(config: RateLimitConfig, now: datetime) -> RateLimitEntry:
        return RateLimitEntry(
            count=1,
            window_reset_at=now + config.window,
            last_attempt_at=now,
        )

    @staticmethod
    def _reset(entry: RateLimitEntry, config: RateLimitConfig, now: datetime) -> None:
        entry.count = 1
        entry.window_reset_at = now + config.window
        entry.last_attempt_at = now
