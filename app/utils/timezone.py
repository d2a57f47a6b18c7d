"""
Date and Time utilities

XMLTV timestamps look like '20241017130900 +0100'. They are parsed strictly
and keep their UTC offset, so formatting a parsed value gives back the exact
literal that was read.
"""
from datetime import datetime, timezone
import logging
import re

from app.errors import MalformedTimestamp

logger = logging.getLogger(__name__)

XMLTV_TIME_FORMAT = "%Y%m%d%H%M%S %z"

_XMLTV_TIME_RE = re.compile(r"^[0-9]{14} [+-][0-9]{4}$")


def parse_xmltv_time(time_str: str) -> datetime:
    """
    Parse an XMLTV timestamp into a timezone-aware datetime

    Args:
        time_str: XMLTV time like '20080715003000 -0600'

    Returns:
        Datetime carrying the original fixed UTC offset (not converted)

    Raises:
        MalformedTimestamp: If the value does not match the fixed pattern
    """
    if not isinstance(time_str, str) or not _XMLTV_TIME_RE.match(time_str):
        raise MalformedTimestamp(time_str)

    try:
        return datetime.strptime(time_str, XMLTV_TIME_FORMAT)
    except ValueError as e:
        # Pattern matched but a field is out of range (month 13, hour 25, ...)
        raise MalformedTimestamp(time_str) from e


def format_xmltv_time(dt: datetime) -> str:
    """Format a datetime back into 'YYYYMMDDHHMMSS +HHMM'"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.strftime(XMLTV_TIME_FORMAT)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)
