"""Shared dependencies for API endpoints.

The AuthService lives on ``app.state`` (built once by ``create_app``), so
every request sees the same stores. Session lookup reads the cookie first
and falls back to the Authorization header.
"""

from typing import Annotated

from fastapi import Depends, Request

from komikai.core.config import Settings
from komikai.core.errors import UnauthorizedError
from komikai.core.session_token import SessionPayload
from komikai.services.auth_service import AuthService

_BEARER_PREFIX = "bearer "


def get_auth_service(request: Request) -> AuthService:
    """Process-wide auth service attached by the app factory."""
    return request.app.state.auth_service


def get_settings(request: Request) -> Settings:
    """Settings the app was created with."""
    return request.app.state.settings


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


def extract_session_token(request: Request, cookie_name: str) -> str | None:
    """Read the session token from the cookie or the Authorization header.

    The header may carry ``Bearer <token>`` or the bare token.

    Returns:
        The raw token, or None if the request carries neither.
    """
    token = request.cookies.get(cookie_name)
    if token:
        return token

    header = request.headers.get("authorization", "").strip()
    if not header:
        return None
    if header.lower().startswith(_BEARER_PREFIX):
        header = header[len(_BEARER_PREFIX) :].strip()
    return header or None


def get_current_session(
    request: Request,
    auth: AuthServiceDep,
    app_settings: SettingsDep,
) -> SessionPayload:
    """Resolve the caller's session.

    Raises:
        UnauthorizedError: No token, or the token failed verification. The
            response never says which.
    """
    token = extract_session_token(request, app_settings.session_cookie_name)
    payload = auth.authenticate(token)
    if payload is None:
        raise UnauthorizedError()
    return payload


CurrentSession = Annotated[SessionPayload, Depends(get_current_session)]


def require_process_quota(
    session: CurrentSession,
    auth: AuthServiceDep,
) -> SessionPayload:
    """Guard for processing endpoints: authenticated and within quota.

    Each call counts one attempt against ``process:<identity>``.

    Raises:
        UnauthorizedError: No valid session.
        RateLimitedError: Processing quota is used up.
    """
    auth.check_process_quota(session.identity)
    return session


ProcessQuota = Annotated[SessionPayload, Depends(require_process_quota)]
