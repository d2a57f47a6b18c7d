"""
Structured logging helpers for consistent log formatting.
"""
import logging
from datetime import datetime, timezone


_CREDENTIAL_PARAMS = ("username", "password", "user", "pass", "pw", "token")
_STREAM_KINDS = ("live", "movie", "series", "timeshift")


def sanitize_url_for_logging(url: str) -> str:
    """
    Remove credentials from a URL for safe logging.

    Masks 'user:pass@host' userinfo, Xtream-style 'user=...&password=...'
    query parameters and the account segments of Xtream stream paths
    ('/live/<user>/<pass>/<id>.ts', '/<user>/<pass>/<id>').
    """
    if "://" not in url:
        return url
    try:
        protocol, rest = url.split("://", 1)
        rest, qmark, query = rest.partition("?")
        host, slash, path = rest.partition("/")
        if "@" in host:
            host = "***:***@" + host.rsplit("@", 1)[1]

        path = _mask_stream_path(path)

        if qmark:
            params = []
            for param in query.split("&"):
                key, sep, _ = param.partition("=")
                if sep and key.lower() in _CREDENTIAL_PARAMS:
                    params.append(f"{key}=***")
                else:
                    params.append(param)
            query = "&".join(params)

        return f"{protocol}://{host}{slash}{path}{qmark}{query}"
    except (ValueError, IndexError):
        return url


def _mask_stream_path(path: str) -> str:
    segments = path.split("/")
    if len(segments) >= 4 and segments[0].lower() in _STREAM_KINDS:
        segments[1:3] = ["***", "***"]
    elif len(segments) == 3 and segments[2].split(".", 1)[0].isdigit():
        segments[0:2] = ["***", "***"]
    return "/".join(segments)


def log_refresh_start(logger: logging.Logger, source_name: str, url: str) -> None:
    """Log the start of a source refresh."""
    logger.info(
        f"{source_name.capitalize()} refresh started at {datetime.now(timezone.utc).isoformat()} "
        f"({sanitize_url_for_logging(url)})"
    )


def log_refresh_end(logger: logging.Logger, source_name: str, summary: str) -> None:
    """Log the end of a source refresh with a short summary."""
    logger.info(
        f"{source_name.capitalize()} refresh completed at {datetime.now(timezone.utc).isoformat()}: {summary}"
    )
