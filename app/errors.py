"""
Error taxonomy for playlist and schedule ingestion.

Parse failures are fatal for the whole document. Fetch and parse failures
both derive from RefreshError so the freshness cache can fall back to its
last good value without caring which stage broke.
"""
import re

from app.utils.logging_helpers import sanitize_url_for_logging


_XUI_ID_RE = re.compile(r'xui-id="[^"]*"')
_URL_RE = re.compile(r'[A-Za-z][A-Za-z0-9+.-]*://[^\s"]+')


def redact_record(raw_text: str) -> str:
    """Mask the session id and URL credentials of a playlist record"""
    text = _XUI_ID_RE.sub('xui-id="***"', raw_text)
    return _URL_RE.sub(lambda match: sanitize_url_for_logging(match.group(0)), text)


class RefreshError(Exception):
    """Raised when one refresh attempt of a source cannot produce data"""
    pass


class MalformedEntry(RefreshError, ValueError):
    """
    Raised when a playlist record cannot be parsed

    raw_text keeps the record as read; the message only carries a redacted
    copy because it ends up in logs.
    """

    def __init__(self, raw_text: str, reason: str = "unparsable record"):
        self.raw_text = raw_text
        self.reason = reason
        super().__init__(f"Malformed playlist entry ({reason}): {redact_record(raw_text)!r}")


class MalformedSchedule(RefreshError, ValueError):
    """Raised when the XMLTV document is structurally invalid"""
    pass


class MalformedTimestamp(MalformedSchedule):
    """Raised when an XMLTV timestamp does not match 'YYYYMMDDHHMMSS +HHMM'"""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid XMLTV timestamp: {value!r}")


class UpstreamFetchFailed(RefreshError):
    """Raised when a source URL cannot be downloaded"""

    def __init__(self, url: str, message: str, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class NoDataAvailable(RuntimeError):
    """Raised when a cache has never been filled successfully"""

    def __init__(self, source_name: str):
        self.source_name = source_name
        super().__init__(f"No {source_name} data available yet")
