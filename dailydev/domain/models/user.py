"""User domain model backing ledger ownership and webhook user resolution."""

import re
from datetime import datetime, timezone
from typing import Optional

_UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def is_internal_user_id(value: object) -> bool:
    """Return True if ``value`` has the shape of an internal (UUID) user id."""
    return isinstance(value, str) and bool(_UUID_PATTERN.match(value))


class User:
    """
    Authenticated account owning one subscription ledger row.

    Attributes:
        id: UUID issued by the identity provider
        email: Account email, if known
        created_at: Account creation timestamp
    """

    def __init__(
        self,
        id: str,
        email: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ):
        self.id = id
        self.email = email
        self.created_at = created_at or datetime.now(timezone.utc)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email}>"


class AuthenticatedUser:
    """Caller identity taken from a verified access token."""

    def __init__(
        self,
        id: str,
        email: Optional[str] = None,
        user_metadata: Optional[dict] = None,
    ):
        self.id = id
        self.email = email
        self.user_metadata = user_metadata or {}

    def __repr__(self) -> str:
        return f"<AuthenticatedUser id={self.id}>"
