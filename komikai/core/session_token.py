"""Stateless signed session tokens.

Tokens are JWT compact serializations (``header.payload.signature``, each
segment base64url without padding) signed with HMAC-SHA256 over
``header + "." + payload``. Nothing is stored server-side: the process-wide
secret is the only state, and an issued token lives until it expires or the
client discards it.

Claims:
- sub: identity (normalized email)
- name: display name
- iat / exp: issue and expiry time, NumericDate seconds (may be fractional)
- iss: issuer

Verification collapses every failure into ``None``. Callers must treat that
as "no session" and must not learn which check failed.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt.utils import base64url_decode, base64url_encode

from komikai.core.clock import Clock, utc_now

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"
_SEGMENT_COUNT = 3

DEFAULT_ISSUER = "komikai"

# Canonical session lifetime (7 days). Settings.session_ttl overrides it once,
# process-wide; call sites never pass their own literal.
SESSION_TTL = timedelta(days=7)


class SessionSecretMissingError(RuntimeError):
    """Raised when a token is requested but no signing secret is configured."""


@dataclass(frozen=True)
class SessionPayload:
    """Decoded contents of a valid session token.

    Attributes:
        identity: Normalized email the session belongs to.
        display_name: Name shown in the UI.
        issued_at: When the token was created.
        expires_at: When the token stops being accepted.
    """

    identity: str
    display_name: str
    issued_at: datetime
    expires_at: datetime

    def seconds_left(self, now: datetime) -> int:
        """Whole seconds until expiry, never negative."""
        return max(0, int((self.expires_at - now).total_seconds()))


def _is_canonical_segment(segment: str) -> bool:
    """Check a segment is the exact base64url encoding of its own bytes.

    base64 decoders ignore the unused low bits of the last character, so two
    different strings can decode to the same signature. Re-encoding rejects
    every variant but the canonical one.
    """
    if not segment:
        return False
    try:
        raw = base64url_decode(segment.encode("ascii"))
    except (ValueError, UnicodeEncodeError):
        return False
    return base64url_encode(raw).decode("ascii") == segment


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


class SessionTokenSigner:
    """Creates and verifies session tokens with a single process-wide secret.

    Args:
        secret: HMAC signing secret. Empty means "not configured": creation
            raises and verification rejects everything.
        clock: Time source for issue and expiry checks.
        issuer: Value of the iss claim written and required.
    """

    def __init__(
        self,
        secret: str,
        *,
        clock: Clock = utc_now,
        issuer: str = DEFAULT_ISSUER,
    ) -> None:
        self._secret = secret
        self._clock = clock
        self._issuer = issuer

    @property
    def is_configured(self) -> bool:
        """Whether a signing secret is available."""
        return bool(self._secret)

    def create(
        self,
        identity: str,
        display_name: str,
        ttl: timedelta = SESSION_TTL,
    ) -> str:
        """Issue a signed token for an identity.

        Args:
            identity: Normalized email.
            display_name: Name to embed in the token.
            ttl: Lifetime from now. Zero yields an already-expired token.

        Returns:
            Compact token string.

        Raises:
            SessionSecretMissingError: If no signing secret is configured.
        """
        if not self._secret:
            raise SessionSecretMissingError(
                "SESSION_SECRET is not configured; refusing to issue session tokens"
            )

        now = self._clock()
        payload = {
            "sub": identity,
            "name": display_name,
            "iat": now.timestamp(),
            "exp": (now + ttl).timestamp(),
            "iss": self._issuer,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str | None) -> SessionPayload | None:
        """Validate a token and return its payload.

        Rejects (returns None) when: no secret is configured, the token is
        not exactly three canonical base64url segments, the signature does
        not match, the payload is not a JSON object, sub or name is not a
        string, iat/exp are missing or not numbers, or the token has expired.

        Args:
            token: Token string as received from the client.

        Returns:
            SessionPayload if valid, None otherwise.
        """
        if not self._secret:
            logger.warning("Session token rejected: no signing secret configured")
            return None
        if not token:
            return None

        segments = token.split(".")
        if len(segments) != _SEGMENT_COUNT or not all(
            _is_canonical_segment(s) for s in segments
        ):
            logger.debug("Session token rejected: malformed segments")
            return None

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                issuer=self._issuer,
                # Expiry is checked below against the injected clock.
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": ["sub", "iat", "exp", "iss"],
                },
            )
        except jwt.InvalidTokenError as exc:
            logger.debug("Session token rejected: %s", type(exc).__name__)
            return None

        identity = claims.get("sub")
        display_name = claims.get("name")
        issued_at = claims.get("iat")
        expires_at = claims.get("exp")
        if not isinstance(identity, str) or not isinstance(display_name, str):
            logger.debug("Session token rejected: bad identity claims")
            return None
        if not _is_number(issued_at) or not _is_number(expires_at):
            logger.debug("Session token rejected: bad time claims")
            return None

        try:
            payload = SessionPayload(
                identity=identity,
                display_name=display_name,
                issued_at=datetime.fromtimestamp(issued_at, UTC),
                expires_at=datetime.fromtimestamp(expires_at, UTC),
            )
        except (OverflowError, OSError, ValueError):
            logger.debug("Session token rejected: time claims out of range")
            return None

        if payload.expires_at <= self._clock():
            logger.debug("Session token rejected: expired")
            return None

        return payload
