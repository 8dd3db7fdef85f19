"""Sign-in flow composed from the code store, rate limiter and token signer.

Sequence per request:
- request_code: allowed-users check → login rate limit → issue code → deliver
- verify_code: verify rate limit → consume code → issue session token
- authenticate: verify session token (no server-side lookup)
- check_process_quota: process rate limit for an authenticated identity

The stores only return facts (bool / None / dataclasses). This service turns
those facts into API errors so every endpoint fails the same way.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from komikai.core.clock import Clock, utc_now
from komikai.core.errors import (
    ForbiddenError,
    InternalError,
    RateLimitedError,
    UnauthorizedError,
    ValidationError,
)
from komikai.core.identity import (
    is_plausible_email,
    login_key,
    normalize_identity,
    process_key,
    verify_key,
)
from komikai.core.session_token import SESSION_TTL, SessionPayload, SessionTokenSigner
from komikai.services.allowed_users import AllowedUsers
from komikai.services.code_delivery import CodeDelivery, CodeDeliveryError
from komikai.services.code_store import DEFAULT_CODE_TTL, CodeStore, generate_code
from komikai.services.rate_limiter import RateLimiter, RateLimitInfo, RateLimitStatus

logger = logging.getLogger(__name__)

_INVALID_CODE_MSG = "Invalid or expired code"


@dataclass(frozen=True)
class IssuedSession:
    """A freshly created session.

    Attributes:
        token: Signed token for the cookie.
        payload: Decoded view of the same token.
    """

    token: str
    payload: SessionPayload


@dataclass(frozen=True)
class ServiceStatus:
    """Diagnostics for the status endpoint."""

    pending_codes: int
    rate_limit: RateLimitStatus
    allowed_users: int
    signing_configured: bool


class AuthService:
    """Owns the auth stores for the lifetime of the process.

    Args:
        code_store: Pending verification codes.
        rate_limiter: Login / process / default rate limits.
        signer: Session token signer.
        allowed_users: Directory of identities allowed to sign in.
        code_delivery: Collaborator that sends codes to users.
        code_ttl: Lifetime of issued codes.
        session_ttl: Canonical lifetime of issued session tokens.
        clock: Time source shared with the stores.
    """

    def __init__(
        self,
        *,
        code_store: CodeStore,
        rate_limiter: RateLimiter,
        signer: SessionTokenSigner,
        allowed_users: AllowedUsers,
        code_delivery: CodeDelivery,
        code_ttl: timedelta = DEFAULT_CODE_TTL,
        session_ttl: timedelta = SESSION_TTL,
        clock: Clock = utc_now,
    ) -> None:
        self.code_store = code_store
        self.rate_limiter = rate_limiter
        self.signer = signer
        self.allowed_users = allowed_users
        self.code_delivery = code_delivery
        self.code_ttl = code_ttl
        self.session_ttl = session_ttl
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    async def request_code(self, email: str) -> str:
        """Issue and deliver a sign-in code.

        Args:
            email: Address as typed by the user.

        Returns:
            The normalized identity the code was sent to.

        Raises:
            ValidationError: Email is malformed.
            ForbiddenError: Email is not in the allowed-users directory.
            RateLimitedError: Too many login attempts for this identity.
            InternalError: The delivery collaborator failed.
        """
        identity = normalize_identity(email)
        if not is_plausible_email(identity):
            raise ValidationError("Invalid email address")

        if not self.allowed_users.is_allowed(identity):
            logger.info("Sign-in code refused for unlisted identity %s", identity)
            raise ForbiddenError("This email is not enabled for sign-in")

        key = login_key(identity)
        if not self.rate_limiter.check(key):
            raise self.rate_limited(key, "Too many sign-in attempts")

        code = generate_code()
        self.code_store.issue(identity, code, self.code_ttl)

        try:
            await self.code_delivery.send_code(
                to_email=identity, code=code, expires_in=self.code_ttl
            )
        except CodeDeliveryError as exc:
            logger.warning("Failed to deliver sign-in code to %s", identity)
            raise InternalError("Could not send the sign-in code") from exc

        return identity

    def verify_code(self, email: str, code: str) -> IssuedSession:
        """Exchange a code for a session token.

        Raises:
            ValidationError: Email or code is missing.
            RateLimitedError: Too many verification attempts.
            UnauthorizedError: Code is wrong, expired, already used, or the
                identity is not allowed. One message for all of them.
            InternalError: No signing secret is configured.
        """
        identity = normalize_identity(email)
        code = code.strip()
        if not identity or not code:
            raise ValidationError("Email and code are required")

        key = verify_key(identity)
        if not self.rate_limiter.check(key):
            raise self.rate_limited(key, "Too many verification attempts")

        if not self.allowed_users.is_allowed(identity):
            raise UnauthorizedError(_INVALID_CODE_MSG)

        # Before consume, so a missing secret leaves the code unused
        if not self.signer.is_configured:
            logger.error("SESSION_SECRET is not configured; cannot issue sessions")
            raise InternalError("Sign-in is temporarily unavailable")

        if not self.code_store.consume(identity, code):
            raise UnauthorizedError(_INVALID_CODE_MSG)

        display_name = self.allowed_users.display_name_for(identity)
        token = self.signer.create(identity, display_name, self.session_ttl)
        payload = self.signer.verify(token)
        if payload is None:
            # Only reachable if the clock jumped past the whole TTL
            raise UnauthorizedError(_INVALID_CODE_MSG)

        logger.info("Session issued for %s", identity)
        return IssuedSession(token=token, payload=payload)

    def authenticate(self, token: str | None) -> SessionPayload | None:
        """Resolve a session token, or None when there is no valid session."""
        return self.signer.verify(token)

    def check_process_quota(self, identity: str) -> None:
        """Count a processing request against the identity's quota.

        Raises:
            RateLimitedError: Processing quota is used up.
        """
        key = process_key(identity)
        if not self.rate_limiter.check(key):
            raise self.rate_limited(key, "Too many processing requests")

    def process_limits(self, identity: str) -> RateLimitInfo:
        """Current processing quota for an identity (read-only)."""
        return self.rate_limiter.info(process_key(identity))

    def status(self) -> ServiceStatus:
        """Sweep expired codes and report store sizes."""
        self.code_store.sweep()
        return ServiceStatus(
            pending_codes=self.code_store.pending_count,
            rate_limit=self.rate_limiter.status(),
            allowed_users=len(self.allowed_users),
            signing_configured=self.signer.is_configured,
        )

    def rate_limited(self, key: str, message: str) -> RateLimitedError:
        """Build the 429 error for a denied key."""
        info = self.rate_limiter.info(key)
        wait = self.rate_limiter.retry_after(key)
        wait_seconds = math.ceil(wait.total_seconds())
        wait_minutes = max(1, math.ceil(wait_seconds / 60))
        return RateLimitedError(
            f"{message}. Try again in {wait_minutes} minute(s).",
            remaining=info.remaining,
            reset_at=info.reset_at,
            blocked=info.blocked,
            retry_after_seconds=wait_seconds,
        )
