"""Tests for the sign-in and session endpoints.

End-to-end through the ASGI app with a fake clock and a recording code
sender: login → verify → cookie → me/limits → logout.
"""

from datetime import datetime

import pytest
from httpx import AsyncClient

from komikai.core.config import Settings
from tests.conftest import TEST_EMAIL, TEST_NAME, FakeClock, RecordingCodeDelivery

_LOGIN_URL = "/api/v1/auth/login"
_VERIFY_URL = "/api/v1/auth/verify"
_LOGOUT_URL = "/api/v1/auth/logout"
_ME_URL = "/api/v1/auth/me"
_LIMITS_URL = "/api/v1/auth/limits"
_RESERVE_URL = "/api/v1/process/reserve"


async def _request_code(
    client: AsyncClient, code_delivery: RecordingCodeDelivery, email: str = TEST_EMAIL
) -> str:
    response = await client.post(_LOGIN_URL, json={"email": email})
    assert response.status_code == 200
    return code_delivery.last_code_for(email.strip().lower())


class TestLogin:
    """Tests for POST /auth/login."""

    async def test_sends_code(
        self, client: AsyncClient, code_delivery: RecordingCodeDelivery
    ) -> None:
        response = await client.post(_LOGIN_URL, json={"email": "User@Example.com"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["email"] == TEST_EMAIL
        assert data["expires_in"] == 600
        assert len(code_delivery.sent) == 1

    async def test_code_is_not_in_response(
        self, client: AsyncClient, code_delivery: RecordingCodeDelivery
    ) -> None:
        response = await client.post(_LOGIN_URL, json={"email": TEST_EMAIL})

        assert code_delivery.last_code_for(TEST_EMAIL) not in response.text

    async def test_malformed_email_is_400(self, client: AsyncClient) -> None:
        response = await client.post(_LOGIN_URL, json={"email": "nope"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_missing_body_is_400(self, client: AsyncClient) -> None:
        response = await client.post(_LOGIN_URL, json={})

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Request validation failed"

    async def test_extra_fields_are_rejected(self, client: AsyncClient) -> None:
        response = await client.post(
            _LOGIN_URL, json={"email": TEST_EMAIL, "admin": True}
        )

        assert response.status_code == 400

    async def test_unlisted_email_is_403(self, client: AsyncClient) -> None:
        response = await client.post(
            _LOGIN_URL, json={"email": "stranger@example.com"}
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    async def test_sixth_attempt_is_429_then_recovers(
        self, client: AsyncClient, clock: FakeClock
    ) -> None:
        for _ in range(5):
            response = await client.post(_LOGIN_URL, json={"email": TEST_EMAIL})
            assert response.status_code == 200

        response = await client.post(_LOGIN_URL, json={"email": TEST_EMAIL})

        assert response.status_code == 429
        body = response.json()["error"]
        assert body["code"] == "RATE_LIMITED"
        assert body["details"][0]["remaining"] == 0
        assert body["details"][0]["blocked"] is True
        assert "reset_at" in body["details"][0]
        assert response.headers["Retry-After"] == "60"

        clock.advance(minutes=5)
        response = await client.post(_LOGIN_URL, json={"email": TEST_EMAIL})
        assert response.status_code == 200


class TestVerify:
    """Tests for POST /auth/verify."""

    async def test_sets_session_cookie(
        self,
        client: AsyncClient,
        code_delivery: RecordingCodeDelivery,
        test_settings: Settings,
    ) -> None:
        code = await _request_code(client, code_delivery)

        response = await client.post(
            _VERIFY_URL, json={"email": TEST_EMAIL, "code": code}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["email"] == TEST_EMAIL
        assert data["name"] == TEST_NAME
        assert data["expires_in"] == 7 * 24 * 3600

        set_cookie = response.headers["set-cookie"]
        assert set_cookie.startswith(f"{test_settings.session_cookie_name}=")
        assert "HttpOnly" in set_cookie
        assert "SameSite=strict" in set_cookie
        assert "Path=/" in set_cookie
        assert f"Max-Age={7 * 24 * 3600}" in set_cookie

    async def test_code_is_single_use(
        self, client: AsyncClient, code_delivery: RecordingCodeDelivery
    ) -> None:
        code = await _request_code(client, code_delivery)
        body = {"email": TEST_EMAIL, "code": code}

        assert (await client.post(_VERIFY_URL, json=body)).status_code == 200
        response = await client.post(_VERIFY_URL, json=body)

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid or expired code"

    async def test_expired_code_is_401(
        self,
        client: AsyncClient,
        code_delivery: RecordingCodeDelivery,
        clock: FakeClock,
    ) -> None:
        code = await _request_code(client, code_delivery)
        clock.advance(minutes=11)

        response = await client.post(
            _VERIFY_URL, json={"email": TEST_EMAIL, "code": code}
        )

        assert response.status_code == 401
        assert "set-cookie" not in response.headers

    async def test_wrong_code_is_401(
        self, client: AsyncClient, code_delivery: RecordingCodeDelivery
    ) -> None:
        code = await _request_code(client, code_delivery)
        wrong = f"{(int(code) + 1) % 1_000_000:06d}"

        response = await client.post(
            _VERIFY_URL, json={"email": TEST_EMAIL, "code": wrong}
        )

        assert response.status_code == 401

    @pytest.mark.parametrize("code", ["12345", "1234567", "12a456", "abcdef"])
    async def test_malformed_code_is_400(
        self, client: AsyncClient, code: str
    ) -> None:
        response = await client.post(
            _VERIFY_URL, json={"email": TEST_EMAIL, "code": code}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestSession:
    """Tests for session-bound endpoints."""

    async def test_me_requires_session(self, client: AsyncClient) -> None:
        response = await client.get(_ME_URL)

        assert response.status_code == 401
        assert response.json()["error"] == {
            "code": "UNAUTHORIZED",
            "message": "Authentication required",
            "details": None,
        }

    async def test_me_with_cookie(self, signed_in_client: AsyncClient) -> None:
        response = await signed_in_client.get(_ME_URL)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["email"] == TEST_EMAIL
        assert data["name"] == TEST_NAME

    async def test_me_with_bearer_header(
        self,
        client: AsyncClient,
        code_delivery: RecordingCodeDelivery,
        test_settings: Settings,
    ) -> None:
        code = await _request_code(client, code_delivery)
        await client.post(_VERIFY_URL, json={"email": TEST_EMAIL, "code": code})
        token = client.cookies[test_settings.session_cookie_name]
        client.cookies.clear()

        bearer = await client.get(_ME_URL, headers={"Authorization": f"Bearer {token}"})
        bare = await client.get(_ME_URL, headers={"Authorization": token})

        assert bearer.status_code == 200
        assert bare.status_code == 200

    async def test_tampered_cookie_is_401(
        self, client: AsyncClient, test_settings: Settings
    ) -> None:
        client.cookies.set(test_settings.session_cookie_name, "a.b.c")

        response = await client.get(_ME_URL)

        assert response.status_code == 401

    async def test_session_expires_after_seven_days(
        self, signed_in_client: AsyncClient, clock: FakeClock
    ) -> None:
        clock.advance(days=7, seconds=-1)
        assert (await signed_in_client.get(_ME_URL)).status_code == 200

        clock.advance(seconds=1)
        assert (await signed_in_client.get(_ME_URL)).status_code == 401

    async def test_logout_clears_cookie(
        self, signed_in_client: AsyncClient, test_settings: Settings
    ) -> None:
        response = await signed_in_client.post(_LOGOUT_URL)

        assert response.status_code == 200
        set_cookie = response.headers["set-cookie"]
        assert set_cookie.startswith(f"{test_settings.session_cookie_name}=")
        assert "Max-Age=0" in set_cookie
        assert (await signed_in_client.get(_ME_URL)).status_code == 401

    async def test_logout_without_session_is_ok(self, client: AsyncClient) -> None:
        response = await client.post(_LOGOUT_URL)

        assert response.status_code == 200


class TestProcessQuota:
    """Tests for /auth/limits and /process/reserve."""

    async def test_limits_require_session(self, client: AsyncClient) -> None:
        assert (await client.get(_LIMITS_URL)).status_code == 401

    async def test_reserve_requires_session(self, client: AsyncClient) -> None:
        assert (await client.post(_RESERVE_URL)).status_code == 401

    async def test_limits_report_full_quota(
        self, signed_in_client: AsyncClient
    ) -> None:
        response = await signed_in_client.get(_LIMITS_URL)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["remaining"] == 10
        assert data["blocked"] is False

    async def test_reserve_counts_down_then_429(
        self, signed_in_client: AsyncClient
    ) -> None:
        for expected_remaining in range(9, -1, -1):
            response = await signed_in_client.post(_RESERVE_URL)
            assert response.status_code == 200
            assert response.json()["data"]["remaining"] == expected_remaining

        response = await signed_in_client.post(_RESERVE_URL)

        assert response.status_code == 429
        assert response.json()["error"]["details"][0]["blocked"] is True
        assert response.headers["Retry-After"] == "300"

        limits = (await signed_in_client.get(_LIMITS_URL)).json()["data"]
        assert limits["remaining"] == 0
        assert limits["blocked"] is True

    async def test_limits_reset_once_window_ends(
        self, signed_in_client: AsyncClient, clock: FakeClock
    ) -> None:
        await signed_in_client.post(_RESERVE_URL)
        clock.advance(minutes=4)
        for _ in range(9):
            assert (await signed_in_client.post(_RESERVE_URL)).status_code == 200
        assert (await signed_in_client.post(_RESERVE_URL)).status_code == 429

        clock.advance(minutes=2)
        data = (await signed_in_client.get(_LIMITS_URL)).json()["data"]

        assert data["remaining"] == 10
        assert data["blocked"] is False
        assert datetime.fromisoformat(data["reset_at"]) > clock()
        assert (await signed_in_client.post(_RESERVE_URL)).status_code == 200


@pytest.mark.parametrize("path", [_ME_URL, _LIMITS_URL])
async def test_session_routes_are_not_cached(
    signed_in_client: AsyncClient, path: str
) -> None:
    response = await signed_in_client.get(path)

    assert response.headers["Cache-Control"] == "no-store, max-age=0"
