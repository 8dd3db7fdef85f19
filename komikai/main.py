"""FastAPI application entry point.

This module creates and configures the FastAPI application, including:
- The process-wide AuthService (code store, rate limiter, token signer)
- Background sweepers for expired codes and rate-limit entries
- Exception handlers for API errors
- API v1 router mounting
- Health check endpoint
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from komikai.api.v1.router import router as v1_router
from komikai.core.clock import Clock, utc_now
from komikai.core.config import Settings, settings
from komikai.core.errors import APIError
from komikai.core.responses import ErrorDetail, ErrorResponse
from komikai.core.session_token import SessionTokenSigner
from komikai.services.allowed_users import AllowedUsers
from komikai.services.auth_service import AuthService
from komikai.services.code_delivery import CodeDelivery, LoggingCodeDelivery
from komikai.services.code_store import CodeStore
from komikai.services.rate_limiter import RateLimiter
from komikai.services.sweeper import PeriodicSweeper

logger = structlog.get_logger()


def configure_logging(log_level: str) -> None:
    """Route stdlib and structlog output through one handler at one level."""
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("komikai").setLevel(level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses.

    Headers added:
    - X-Frame-Options: Prevents clickjacking attacks
    - X-Content-Type-Options: Prevents MIME sniffing
    - Referrer-Policy: Controls referrer information leakage
    - Cache-Control: Session data must not be cached (API routes only)
    - Content-Security-Policy: API returns no HTML
    - Strict-Transport-Security: Forces HTTPS (production only)
    """

    def __init__(self, app: ASGIApp, *, environment: str) -> None:
        super().__init__(app)
        self._environment = environment

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Add security headers to response."""
        response = await call_next(request)

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if request.url.path.startswith("/api/"):
            response.headers["Cache-Control"] = "no-store, max-age=0"

        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'"
        )

        # HSTS only in production (assumes HTTPS via reverse proxy)
        if self._environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Render an APIError in the error envelope, with any extra headers."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=exc.code,
                message=exc.message,
                details=exc.details,
            )
        ).model_dump(),
        headers=exc.headers,
    )


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert FastAPI's request validation errors to the error envelope (400)."""
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="VALIDATION_ERROR",
                message="Request validation failed",
                details=[
                    {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
                    for e in exc.errors()
                ],
            )
        ).model_dump(),
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions.

    Never expose internal error details to clients. Log for debugging.
    """
    logger.exception("Unhandled exception", exc_info=exc, path=str(request.url.path))

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="INTERNAL_ERROR",
                message="An unexpected error occurred",
            )
        ).model_dump(),
    )


def _load_allowed_users(path: str) -> AllowedUsers:
    """Read the allowed-users file; a missing file means nobody can sign in."""
    try:
        return AllowedUsers.load(path)
    except FileNotFoundError:
        logger.error("Allowed users file not found", path=path)
        return AllowedUsers()


def build_auth_service(
    app_settings: Settings,
    *,
    clock: Clock = utc_now,
    allowed_users: AllowedUsers | None = None,
    code_delivery: CodeDelivery | None = None,
) -> AuthService:
    """Wire the auth stores from settings.

    Args:
        app_settings: Source of secret, TTLs and file paths.
        clock: Time source shared by every store.
        allowed_users: Pre-built directory (skips reading the file).
        code_delivery: Code sender (defaults to logging the code).
    """
    secret = app_settings.session_secret.get_secret_value()
    if not secret:
        logger.warning("SESSION_SECRET is not set; sign-in is disabled")

    return AuthService(
        code_store=CodeStore(clock=clock),
        rate_limiter=RateLimiter(clock=clock),
        signer=SessionTokenSigner(
            secret, clock=clock, issuer=app_settings.session_issuer
        ),
        allowed_users=(
            allowed_users
            if allowed_users is not None
            else _load_allowed_users(app_settings.allowed_users_path)
        ),
        code_delivery=code_delivery or LoggingCodeDelivery(),
        code_ttl=app_settings.code_ttl,
        session_ttl=app_settings.session_ttl,
        clock=clock,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the periodic sweepers on startup and stop them on shutdown."""
    app_settings: Settings = app.state.settings
    auth: AuthService = app.state.auth_service

    configure_logging(app_settings.log_level)

    sweepers = [
        PeriodicSweeper(
            "code-store",
            auth.code_store.sweep,
            interval_seconds=app_settings.code_sweep_interval_seconds,
        ),
        PeriodicSweeper(
            "rate-limiter",
            auth.rate_limiter.sweep,
            interval_seconds=app_settings.rate_limit_sweep_interval_seconds,
        ),
    ]
    app.state.sweepers = sweepers

    if app_settings.sweepers_enabled:
        for sweeper in sweepers:
            sweeper.start()

    logger.info(
        "Application started",
        environment=app_settings.environment,
        allowed_users=len(auth.allowed_users),
        sweepers_enabled=app_settings.sweepers_enabled,
    )

    yield

    for sweeper in sweepers:
        await sweeper.stop()
    logger.info("Application stopped")


def create_app(
    app_settings: Settings | None = None,
    *,
    clock: Clock = utc_now,
    allowed_users: AllowedUsers | None = None,
    code_delivery: CodeDelivery | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Everything stateful is built here and attached to ``app.state``, so
    tests can create isolated apps with their own clock and collaborators.

    Returns:
        Configured FastAPI application instance.
    """
    app_settings = app_settings or settings

    app = FastAPI(
        title=f"{app_settings.app_name} API",
        version="1.0.0",
        description="Email-code sign-in, sessions and rate limiting",
        lifespan=lifespan,
    )

    app.state.settings = app_settings
    app.state.started_at = clock()
    app.state.auth_service = build_auth_service(
        app_settings,
        clock=clock,
        allowed_users=allowed_users,
        code_delivery=code_delivery,
    )

    app.add_middleware(
        SecurityHeadersMiddleware, environment=app_settings.environment
    )

    # Order matters: specific handlers first, then catch-all
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.include_router(v1_router, prefix="/api/v1")

    @app.get("/health")
    def health_check() -> dict:
        """Health check endpoint for monitoring."""
        return {"status": "healthy"}

    return app


# Used by uvicorn: uvicorn komikai.main:app
app = create_app()
