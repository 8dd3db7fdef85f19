"""Delivery of verification codes to users.

Real email transport lives outside this service. ``CodeDelivery`` is the
seam the login endpoint hands codes to; ``LoggingCodeDelivery`` is the
development implementation that writes the code to the log instead of
sending it.
"""

import logging
from abc import ABC, abstractmethod
from datetime import timedelta

logger = logging.getLogger(__name__)


class CodeDeliveryError(Exception):
    """Raised when a code could not be handed to the user."""


class CodeDelivery(ABC):
    """Abstract sender of verification codes."""

    @abstractmethod
    async def send_code(
        self, *, to_email: str, code: str, expires_in: timedelta
    ) -> None:
        """Deliver a code.

        Args:
            to_email: Normalized recipient address.
            code: 6-digit verification code.
            expires_in: How long the code stays valid (for the message text).

        Raises:
            CodeDeliveryError: If delivery failed.
        """


class LoggingCodeDelivery(CodeDelivery):
    """Development sender: logs the code instead of emailing it."""

    async def send_code(
        self, *, to_email: str, code: str, expires_in: timedelta
    ) -> None:
        minutes = int(expires_in.total_seconds() // 60)
        logger.warning(
            "Email transport not configured; sign-in code for %s is %s "
            "(expires in %d minutes)",
            to_email,
            code,
            minutes,
        )
