"""Directory of identities allowed to sign in.

Loaded once at startup from a JSON file in one of two shapes:

- a list of emails: ``["ana@example.com", "bo@example.com"]``
- an object mapping email to display name: ``{"ana@example.com": "Ana"}``

Emails are normalized on load, so lookups are case-insensitive.
"""

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

from komikai.core.identity import normalize_identity

logger = logging.getLogger(__name__)

_FALLBACK_DISPLAY_NAME = "User"


class AllowedUsersFormatError(ValueError):
    """Raised when the allowed-users file has an unsupported shape."""


class AllowedUsers:
    """Allowed identities and their optional display names.

    Args:
        entries: Email -> display name (None when the file has no name).
    """

    def __init__(self, entries: Mapping[str, str | None] | None = None) -> None:
        self._names: dict[str, str | None] = {
            normalize_identity(email): name for email, name in (entries or {}).items()
        }

    @classmethod
    def from_emails(cls, emails: Iterable[str]) -> "AllowedUsers":
        """Build a directory without display names."""
        return cls(dict.fromkeys(emails))

    @classmethod
    def from_json(cls, content: str) -> "AllowedUsers":
        """Parse either supported JSON shape.

        Raises:
            AllowedUsersFormatError: If the JSON is neither a list of strings
                nor an object of string -> string.
        """
        parsed = json.loads(content)

        if isinstance(parsed, list):
            if not all(isinstance(email, str) for email in parsed):
                raise AllowedUsersFormatError("Allowed users list must contain strings")
            return cls.from_emails(parsed)

        if isinstance(parsed, dict):
            entries: dict[str, str | None] = {}
            for email, name in parsed.items():
                if name is not None and not isinstance(name, str):
                    raise AllowedUsersFormatError(
                        f"Display name for '{email}' must be a string"
                    )
                entries[email] = name or None
            return cls(entries)

        raise AllowedUsersFormatError(
            "Allowed users file must be a JSON list or object"
        )

    @classmethod
    def load(cls, path: str | Path) -> "AllowedUsers":
        """Read the directory from disk.

        Raises:
            FileNotFoundError: If the file does not exist.
            AllowedUsersFormatError: If the content has an unsupported shape.
        """
        file_path = Path(path)
        users = cls.from_json(file_path.read_text(encoding="utf-8"))
        logger.info("Loaded %d allowed users from %s", len(users), file_path)
        return users

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, email: object) -> bool:
        return isinstance(email, str) and normalize_identity(email) in self._names

    def is_allowed(self, email: str) -> bool:
        """Whether an email may request a sign-in code."""
        return email in self

    def display_name_for(self, email: str) -> str:
        """Configured name, else the local part of the email, else "User"."""
        identity = normalize_identity(email)
        name = self._names.get(identity)
        if name:
            return name
        local_part = identity.split("@", 1)[0]
        return local_part or _FALLBACK_DISPLAY_NAME
