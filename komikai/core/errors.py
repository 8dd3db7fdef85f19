"""API error classes.

The auth stores never raise for expected negative outcomes (wrong code,
rate limited, invalid token); they return plain values. The HTTP layer maps
those outcomes onto these errors so every failure shares one envelope.
"""

from datetime import datetime


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "UNAUTHORIZED").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
        headers: Optional extra response headers (e.g., Retry-After).
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.headers = headers
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400)."""

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid session exists, or a verification code was rejected.
    The message never says WHICH check failed.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class ForbiddenError(APIError):
    """Identity is not allowed to use the application (403)."""

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=403,
        )


class RateLimitedError(APIError):
    """Rate limit exhausted for a key (429).

    Details carry the rate-limit projection so the presentation layer can
    tell the user how long to wait.

    Args:
        message: Human-readable error message.
        remaining: Attempts left in the current window.
        reset_at: Absolute end of the current counting window.
        blocked: Whether the key is inside its cool-down block.
        retry_after_seconds: Value for the Retry-After header.
    """

    def __init__(
        self,
        message: str,
        *,
        remaining: int,
        reset_at: datetime,
        blocked: bool,
        retry_after_seconds: int,
    ) -> None:
        super().__init__(
            code="RATE_LIMITED",
            message=message,
            status_code=429,
            details=[
                {
                    "remaining": remaining,
                    "reset_at": reset_at.isoformat(),
                    "blocked": blocked,
                }
            ],
            headers={"Retry-After": str(max(1, retry_after_seconds))},
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
