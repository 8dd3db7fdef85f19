from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr

from komikai.core.config import Settings
from komikai.core.session_token import SessionTokenSigner
from komikai.main import create_app
from komikai.services.allowed_users import AllowedUsers
from komikai.services.code_delivery import CodeDelivery
from komikai.services.code_store import CodeStore
from komikai.services.rate_limiter import RateLimiter

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_SESSION_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

TEST_EMAIL = "user@example.com"
TEST_NAME = "Test User"

# Fixed start so timestamps in assertions are predictable
EPOCH = datetime(2024, 1, 15, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Manually driven clock. Call it to read, ``advance`` to move forward."""

    def __init__(self, start: datetime = EPOCH) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> None:
        self.now += delta if delta is not None else timedelta(**kwargs)


class RecordingCodeDelivery(CodeDelivery):
    """Collects sent codes instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, timedelta]] = []

    async def send_code(
        self, *, to_email: str, code: str, expires_in: timedelta
    ) -> None:
        self.sent.append((to_email, code, expires_in))

    def last_code_for(self, email: str) -> str:
        for to_email, code, _ in reversed(self.sent):
            if to_email == email:
                return code
        msg = f"No code sent to {email}"
        raise AssertionError(msg)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def code_store(clock: FakeClock) -> CodeStore:
    return CodeStore(clock=clock)


@pytest.fixture
def rate_limiter(clock: FakeClock) -> RateLimiter:
    return RateLimiter(clock=clock)


@pytest.fixture
def signer(clock: FakeClock) -> SessionTokenSigner:
    return SessionTokenSigner(TEST_SESSION_SECRET, clock=clock)


@pytest.fixture
def allowed_users() -> AllowedUsers:
    return AllowedUsers(
        {
            TEST_EMAIL: TEST_NAME,
            "nameless@example.com": None,
        }
    )


@pytest.fixture
def code_delivery() -> RecordingCodeDelivery:
    return RecordingCodeDelivery()


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the developer's .env file."""
    return Settings(
        _env_file=None,
        session_secret=SecretStr(TEST_SESSION_SECRET),
        session_cookie_secure=False,
        sweepers_enabled=False,
    )


@pytest.fixture
def app(test_settings, clock, allowed_users, code_delivery):
    """Application wired to the fake clock and recording delivery."""
    return create_app(
        test_settings,
        clock=clock,
        allowed_users=allowed_users,
        code_delivery=code_delivery,
    )


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def signed_in_client(
    client: AsyncClient, code_delivery: RecordingCodeDelivery
) -> AsyncClient:
    """Client holding a session cookie for TEST_EMAIL."""
    response = await client.post("/api/v1/auth/login", json={"email": TEST_EMAIL})
    assert response.status_code == 200
    code = code_delivery.last_code_for(TEST_EMAIL)
    response = await client.post(
        "/api/v1/auth/verify", json={"email": TEST_EMAIL, "code": code}
    )
    assert response.status_code == 200
    return client
