"""
Human-readable codes for trips and salary periods.

Both generators are pure functions of their inputs; uniqueness is enforced
by the database unique constraints, not here.
"""
import secrets
import string
from datetime import date, datetime
from typing import Optional

TRIP_CODE_ALPHABET = string.ascii_uppercase + string.digits
TRIP_CODE_SUFFIX_LENGTH = 4

# Days 1-15 belong to the first half of the month
PERIOD_SPLIT_DAY = 15


def generate_trip_code(now: Optional[datetime] = None, suffix: Optional[str] = None) -> str:
    """Build a trip code of the form TR<YY><MM><DD>-<XXXX>."""
    if now is None:
        from timezone_utils import get_local_time_naive
        now = get_local_time_naive()
    if suffix is None:
        suffix = ''.join(secrets.choice(TRIP_CODE_ALPHABET) for _ in range(TRIP_CODE_SUFFIX_LENGTH))
    return f"TR{now:%y%m%d}-{suffix}"


def generate_period_code(period_start: date) -> str:
    """Build a half-month period code, e.g. 2024-12-P1."""
    half = 'P1' if period_start.day <= PERIOD_SPLIT_DAY else 'P2'
    return f"{period_start.year:04d}-{period_start.month:02d}-{half}"
