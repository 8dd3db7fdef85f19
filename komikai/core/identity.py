"""Identity normalization.

An identity is a case-normalized email address. It is the primary key of
the code store, the suffix of every rate-limit key, and the ``sub`` claim of
every session token, so all three must see the same normalized form.
"""

import re

# One "@", non-empty local part, a dot in the domain.
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_MAX_EMAIL_LENGTH = 254


def normalize_identity(email: str) -> str:
    """Strip surrounding whitespace and lower-case an email address."""
    return email.strip().lower()


def is_plausible_email(identity: str) -> bool:
    """Check that a normalized identity looks like an email address."""
    if not identity or len(identity) > _MAX_EMAIL_LENGTH:
        return False
    return _EMAIL_PATTERN.match(identity) is not None


def login_key(identity: str) -> str:
    """Rate-limit key for login attempts of an identity."""
    return f"login:{identity}"


def process_key(identity: str) -> str:
    """Rate-limit key for processing requests of an identity."""
    return f"process:{identity}"


def verify_key(identity: str) -> str:
    """Rate-limit key for code verification attempts (default scope)."""
    return f"verify:{identity}"
