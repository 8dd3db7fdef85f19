"""Email-code sign-in and session endpoints.

Endpoints:
- POST /auth/login: request a 6-digit sign-in code
- POST /auth/verify: exchange the code for a session cookie
- POST /auth/logout: clear the session cookie
- GET /auth/me: current session info
- GET /auth/limits: processing quota for the current session
"""

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import Response

from komikai.api.deps import AuthServiceDep, CurrentSession, SettingsDep
from komikai.core.config import Settings
from komikai.core.responses import DataResponse
from komikai.core.session_token import SessionPayload
from komikai.services.auth_service import AuthService

router = APIRouter()


# ===================================================================
# Request models
# ===================================================================


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(min_length=1, max_length=320)


class VerifyRequest(BaseModel):
    """Request body for POST /auth/verify."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(min_length=1, max_length=320)
    code: str = Field(pattern=r"^\d{6}$")


# ===================================================================
# Helpers
# ===================================================================


def _session_data(session: SessionPayload, auth: AuthService) -> dict:
    return {
        "email": session.identity,
        "name": session.display_name,
        "expires_at": session.expires_at.isoformat(),
        "expires_in": session.seconds_left(auth.now()),
    }


def _set_session_cookie(
    response: Response, token: str, app_settings: Settings
) -> None:
    response.set_cookie(
        key=app_settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=app_settings.session_cookie_secure,
        samesite=app_settings.session_cookie_samesite,
        path="/",
        max_age=int(app_settings.session_ttl.total_seconds()),
    )


# ===================================================================
# Endpoints
# ===================================================================


@router.post("/login")
async def request_login_code(
    body: LoginRequest,
    auth: AuthServiceDep,
) -> DataResponse[dict]:
    """Send a sign-in code to an allowed email.

    Rate limit: 5 requests per minute per identity, then blocked for
    5 minutes.
    """
    identity = await auth.request_code(body.email)
    return DataResponse(
        data={
            "message": "A sign-in code has been sent",
            "email": identity,
            "expires_in": int(auth.code_ttl.total_seconds()),
        }
    )


@router.post("/verify")
async def verify_login_code(
    body: VerifyRequest,
    response: Response,
    auth: AuthServiceDep,
    app_settings: SettingsDep,
) -> DataResponse[dict]:
    """Exchange a sign-in code for a session cookie.

    Codes are single-use. Wrong, expired and reused codes all get the same
    401 response.
    """
    issued = auth.verify_code(body.email, body.code)
    _set_session_cookie(response, issued.token, app_settings)
    return DataResponse(data=_session_data(issued.payload, auth))


@router.post("/logout")
async def logout(
    response: Response, app_settings: SettingsDep
) -> DataResponse[dict]:
    """Clear the session cookie.

    Tokens are stateless, so this only removes the client's copy. Cookie
    attributes must match the ones used when setting it.
    """
    response.delete_cookie(
        key=app_settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=app_settings.session_cookie_secure,
        samesite=app_settings.session_cookie_samesite,
    )
    return DataResponse(data={"message": "Signed out"})


@router.get("/me")
async def get_me(
    session: CurrentSession, auth: AuthServiceDep
) -> DataResponse[dict]:
    """Return the current session."""
    return DataResponse(data=_session_data(session, auth))


@router.get("/limits")
async def get_limits(
    session: CurrentSession, auth: AuthServiceDep
) -> DataResponse[dict]:
    """Processing quota for the current session (does not consume an attempt)."""
    info = auth.process_limits(session.identity)
    return DataResponse(
        data={
            "remaining": info.remaining,
            "reset_at": info.reset_at.isoformat(),
            "blocked": info.blocked,
        }
    )
