"""In-memory auth stores and the service that composes them.

Exports:
    Stores: CodeStore, RateLimiter
    Directory and delivery collaborators
    AuthService for the HTTP layer
"""

from komikai.services.allowed_users import AllowedUsers, AllowedUsersFormatError
from komikai.services.auth_service import AuthService, IssuedSession, ServiceStatus
from komikai.services.code_delivery import (
    CodeDelivery,
    CodeDeliveryError,
    LoggingCodeDelivery,
)
from komikai.services.code_store import CodeStore, PendingCode, generate_code
from komikai.services.rate_limiter import (
    RateLimitConfig,
    RateLimiter,
    RateLimitInfo,
    RateLimitStatus,
)
from komikai.services.sweeper import PeriodicSweeper

__all__ = [
    # Stores
    "CodeStore",
    "PendingCode",
    "generate_code",
    "RateLimiter",
    "RateLimitConfig",
    "RateLimitInfo",
    "RateLimitStatus",
    "PeriodicSweeper",
    # Collaborators
    "AllowedUsers",
    "AllowedUsersFormatError",
    "CodeDelivery",
    "CodeDeliveryError",
    "LoggingCodeDelivery",
    # Composition
    "AuthService",
    "IssuedSession",
    "ServiceStatus",
]
