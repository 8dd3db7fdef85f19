"""In-memory store for pending email verification codes.

Holds at most one live code per identity. A code is consumed exactly once;
an expired code is deleted the moment it is probed, and a background sweep
removes the ones nobody probes.
"""

import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from komikai.core.clock import Clock, utc_now

logger = logging.getLogger(__name__)

CODE_LENGTH = 6

# Default TTL for verification codes (10 minutes)
DEFAULT_CODE_TTL = timedelta(minutes=10)


def generate_code() -> str:
    """Generate a 6-digit verification code from a CSPRNG.

    Leading zeros are kept, so the result is always exactly 6 ASCII digits.
    """
    return f"{secrets.randbelow(10**CODE_LENGTH):0{CODE_LENGTH}d}"


@dataclass(frozen=True)
class PendingCode:
    """A code waiting to be consumed.

    Attributes:
        identity: Normalized email the code was sent to.
        code: The 6-digit code.
        expires_at: Moment the code stops being accepted.
    """

    identity: str
    code: str
    expires_at: datetime


class CodeStore:
    """Identity -> pending code map with one-time consumption.

    All mutation happens under one lock, so ``issue`` and ``consume`` are
    linearizable: two concurrent consumes of the same correct code cannot
    both succeed.

    Args:
        clock: Time source for expiry checks.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._codes: dict[str, PendingCode] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def issue(
        self,
        identity: str,
        code: str,
        ttl: timedelta = DEFAULT_CODE_TTL,
    ) -> None:
        """Store a code for an identity, replacing any previous one.

        Args:
            identity: Normalized email.
            code: Code sent to the user.
            ttl: Time until the code expires.
        """
        expires_at = self._clock() + ttl
        with self._lock:
            self._codes[identity] = PendingCode(
                identity=identity, code=code, expires_at=expires_at
            )
        logger.info("Verification code issued for %s", identity)

    def consume(self, identity: str, code: str) -> bool:
        """Use up a code.

        Succeeds only if a code exists for the identity, matches exactly, and
        has not expired. On success the code is removed. A matching but
        expired code is removed too, and the call still fails. A wrong code
        leaves the pending entry in place.

        Args:
            identity: Normalized email.
            code: Code supplied by the user.

        Returns:
            True if the code was valid and is now consumed, False otherwise.
        """
        now = self._clock()
        with self._lock:
            entry = self._codes.get(identity)
            if entry is None:
                return False
            if entry.code != code:
                return False
            del self._codes[identity]
            if now >= entry.expires_at:
                logger.info("Expired verification code probed for %s", identity)
                return False

        logger.info("Verification code consumed for %s", identity)
        return True

    def sweep(self) -> int:
        """Remove all expired codes.

        Returns:
            Number of codes removed.
        """
        now = self._clock()
        with self._lock:
            expired = [
                identity
                for identity, entry in self._codes.items()
                if entry.expires_at < now
            ]
            for identity in expired:
                del self._codes[identity]
        if expired:
            logger.debug("Swept %d expired verification codes", len(expired))
        return len(expired)

    @property
    def pending_count(self) -> int:
        """Number of codes currently held, expired or not."""
        with self._lock:
            return len(self._codes)

    def clear(self) -> None:
        """Drop every pending code."""
        with self._lock:
            self._codes.clear()
