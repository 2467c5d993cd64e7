"""Utility helper functions for the packager."""

import re
import secrets
from datetime import datetime, timezone

from common.constants import TOKEN_ALPHABET, TOKEN_LENGTH

_TOKEN_RE = re.compile(r"^[A-Za-z0-9]{%d}$" % TOKEN_LENGTH)


def generate_token() -> str:
    """
    Generate a new upload token.

    Returns:
        Random alphanumeric string of TOKEN_LENGTH characters
    """
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))


def is_valid_token(token: str) -> bool:
    """Check that a token has the shape produced by generate_token."""
    return isinstance(token, str) and _TOKEN_RE.match(token) is not None


def short_token(token: str) -> str:
    """
    Shorten a token for log output.

    Args:
        token: Upload token

    Returns:
        First eight characters of the token
    """
    return token[:8]


def utc_now() -> datetime:
    """
    Get current time as a timezone-aware UTC datetime.

    Returns:
        Current UTC datetime
    """
    return datetime.now(timezone.utc)


def to_timestamp(value: datetime) -> str:
    """
    Serialize a datetime to a fixed-width UTC ISO string.

    Fixed width keeps string comparison in SQL consistent with time order.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_timestamp(value: str) -> datetime:
    """Parse a timestamp written by to_timestamp."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
