"""
Submission identifiers.

Format: SUB-<13-digit epoch milliseconds>-<9 uppercase alphanumerics>,
e.g. SUB-1727301033123-K3J9QZ2XA. The suffix is drawn from the secrets
module. Identifiers are not guaranteed unique on their own; the unique
constraint on form_responses.submission_id is the backstop.
"""

import re
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Optional

SUBMISSION_ID_PATTERN = re.compile(r'^SUB-(\d{13})-([A-Z0-9]{9})\Z')

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
_SUFFIX_LENGTH = 9


def generate_submission_id(now_ms: Optional[int] = None) -> str:
    """
    Build a new submission identifier.

    Args:
        now_ms: Epoch milliseconds to embed; defaults to the current time
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = ''.join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"SUB-{now_ms:013d}-{suffix}"


def is_submission_id(value) -> bool:
    return isinstance(value, str) and bool(SUBMISSION_ID_PATTERN.match(value))


def submission_timestamp(submission_id: str) -> Optional[datetime]:
    """Recover the embedded creation time as naive UTC, or None if malformed."""
    if not isinstance(submission_id, str):
        return None
    match = SUBMISSION_ID_PATTERN.match(submission_id)
    if not match:
        return None
    millis = int(match.group(1))
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).replace(tzinfo=None)
