"""
Utility functions for the intake application.
"""

import re
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """
    Current UTC time as a naive datetime.

    Timestamps are stored naive-UTC so they compare cleanly after a
    round trip through SQLite, which drops tzinfo.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_email(email: Optional[str]) -> str:
    """Trim and lowercase an email address."""
    return (email or '').strip().lower()


def slugify(text: str) -> str:
    """
    Convert text to URL-friendly slug.

    Args:
        text: Text to convert

    Returns:
        URL-friendly slug
    """
    text = text.lower().strip()
    text = re.sub(r'[^\w\s-]', '', text)
    text = re.sub(r'[\s_-]+', '-', text)
    text = re.sub(r'^-+|-+$', '', text)
    return text


def isoformat_utc(value: Optional[datetime]) -> Optional[str]:
    """Serialize a naive UTC datetime with a trailing Z."""
    if value is None:
        return None
    return value.isoformat() + 'Z'
