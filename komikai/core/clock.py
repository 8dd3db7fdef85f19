"""Shared time source for the auth stores.

Every store takes a ``Clock`` (a zero-argument callable returning an aware
UTC datetime) so tests can drive time forward instead of sleeping.
"""

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: current wall-clock time in UTC."""
    return datetime.now(UTC)
