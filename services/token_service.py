"""
Token Service

Generates and checks the capability tokens embedded in client form links
(<APP_URL>/f/<token>), and does the expiry arithmetic for form instances.

Tokens are 32 random bytes encoded base64url without padding. They carry no
instance data, so possession of the link is the only credential.
"""

import base64
import re
import secrets
from datetime import datetime, timedelta
from typing import Optional

from utils import utcnow

TOKEN_BYTES = 32
MIN_TOKEN_LENGTH = 16

DEFAULT_EXPIRY_DAYS = 7
MIN_EXPIRY_DAYS = 0.5
MAX_EXPIRY_DAYS = 30

EXPIRING_SOON_WINDOW = timedelta(hours=24)

_TOKEN_PATTERN = re.compile(r'^[A-Za-z0-9_-]+\Z')


def generate_form_token() -> str:
    """Generate a cryptographically secure, URL-safe form token."""
    raw = secrets.token_bytes(TOKEN_BYTES)
    return base64.urlsafe_b64encode(raw).rstrip(b'=').decode('ascii')


def validate_token_format(token) -> bool:
    """
    Cheap shape check before hitting the database.

    A well-formed token is at least 16 characters from the base64url alphabet.
    Passing this check says nothing about whether the token exists.
    """
    if not token or not isinstance(token, str):
        return False
    if len(token) < MIN_TOKEN_LENGTH:
        return False
    return bool(_TOKEN_PATTERN.match(token))


def clamp_expiry_days(days: Optional[float]) -> float:
    """Default to 7 days and clamp into [0.5, 30]."""
    if days is None:
        days = DEFAULT_EXPIRY_DAYS
    return min(max(float(days), MIN_EXPIRY_DAYS), MAX_EXPIRY_DAYS)


def calculate_expiry(days: Optional[float] = None, now: Optional[datetime] = None) -> datetime:
    """
    Compute an expiry timestamp days from now.

    Args:
        days: Lifetime in days (fractional allowed), clamped to [0.5, 30]
        now: Reference time (naive UTC); defaults to the current time

    Returns:
        Naive UTC datetime
    """
    now = now or utcnow()
    return now + timedelta(days=clamp_expiry_days(days))


def is_expired(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    """True once now is strictly past expires_at."""
    now = now or utcnow()
    return now > expires_at


def time_until_expiry(expires_at: datetime, now: Optional[datetime] = None) -> timedelta:
    """Remaining lifetime, never negative."""
    now = now or utcnow()
    return max(timedelta(0), expires_at - now)


def format_time_remaining(expires_at: datetime, now: Optional[datetime] = None) -> str:
    """
    Human-readable remaining time, e.g. '2 days, 3 hours' or '45 minutes'.

    Returns 'Expired' when nothing remains.
    """
    remaining = time_until_expiry(expires_at, now)
    if remaining <= timedelta(0):
        return 'Expired'

    days = remaining.days
    hours, rest = divmod(remaining.seconds, 3600)
    minutes = rest // 60

    if days > 0:
        return f"{days} {_plural(days, 'day')}, {hours} {_plural(hours, 'hour')}"
    if hours > 0:
        return f"{hours} {_plural(hours, 'hour')}, {minutes} {_plural(minutes, 'minute')}"
    return f"{minutes} {_plural(minutes, 'minute')}"


def is_expiring_soon(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    """True when the form is still open but closes within 24 hours."""
    remaining = time_until_expiry(expires_at, now)
    return timedelta(0) < remaining <= EXPIRING_SOON_WINDOW


def _plural(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"
