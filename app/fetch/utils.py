import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

def monotonic_ms() -> float:
    """Monotonic clock in milliseconds, for measuring round trips"""
    return time.monotonic() * 1000

def _parse_iso_date(value: str) -> Optional[datetime]:
    # Some servers send ISO 8601 instead of an HTTP date
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None

def parse_http_date(value: str) -> Optional[datetime]:
    """
    Parse an HTTP Date header into an aware UTC datetime.
    Examples: 'Sun, 06 Nov 1994 08:49:37 GMT' -> 1994-11-06 08:49:37+00:00
              '1994-11-06T08:49:37Z' -> 1994-11-06 08:49:37+00:00
    Returns None if the value is not a valid date.
    """
    if not value or not value.strip():
        return None
    value = value.strip()

    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError, OverflowError):
        parsed = None
    if parsed is None:
        parsed = _parse_iso_date(value)
    if parsed is None:
        return None

    # Dates without a zone (or with -0000) are taken as UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)

def to_epoch_ms(moment: datetime) -> float:
    return moment.timestamp() * 1000

def format_iso_utc(moment: datetime) -> str:
    """
    Format as ISO 8601 UTC with millisecond field and Z suffix.
    Example: 1994-11-06 08:49:37+00:00 -> '1994-11-06T08:49:37.000Z'
    """
    utc = moment.astimezone(timezone.utc)
    return utc.replace(tzinfo=None).isoformat(timespec="milliseconds") + "Z"
