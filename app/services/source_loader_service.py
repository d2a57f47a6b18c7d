"""
Source Loader Service

Fetches and parses the playlist and guide sources. These are the loaders the
freshness caches call on refresh; every failure surfaces as a RefreshError.
"""
import asyncio
import logging
from typing import Callable, TypeVar

import httpx

from app.config import CustomSettings
from app.errors import RefreshError
from app.services.playlist_parser_service import Playlist
from app.services.xmltv_parser_service import ScheduleDocument, parse_schedule
from app.utils.http_fetch import fetch_url
from app.utils.logging_helpers import log_refresh_end, log_refresh_start


logger = logging.getLogger(__name__)

T = TypeVar('T')


async def load_playlist(
    config: CustomSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Playlist:
    """
    Download, parse and filter the M3U playlist

    Raises:
        UpstreamFetchFailed: If the playlist cannot be downloaded
        MalformedEntry: If any record in the playlist is malformed
    """
    url = _require_url(config.m3u_path, "M3U_PATH")
    log_refresh_start(logger, "playlist", url)

    response = await fetch_url(
        url,
        timeout=config.http_timeout_sec,
        max_retries=config.http_max_retries,
        backoff_factor=config.http_backoff_factor,
        user_agent=config.user_agent,
        transport=transport,
    )

    playlist = await run_parser(
        Playlist.parse,
        response.text,
        parse_timeout_seconds=config.parse_timeout_sec,
    )
    playlist.apply_filters(
        config.groups_to_exclude,
        config.snippets_to_exclude,
        drop_file_extensions=config.exclude_file_extensions,
    )

    groups = playlist.filtered_groups()
    logger.info("Fetched playlist with %s groups:\n%s", len(groups), "\n".join(groups))
    log_refresh_end(
        logger,
        "playlist",
        f"{len(playlist.filtered_entries)} of {len(playlist.entries)} entries kept",
    )
    return playlist


async def load_schedule(
    config: CustomSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ScheduleDocument:
    """
    Download and parse the XMLTV guide

    Raises:
        UpstreamFetchFailed: If the guide cannot be downloaded
        MalformedSchedule: If the document or one of its timestamps is invalid
    """
    url = _require_url(config.epg_path, "EPG_PATH")
    log_refresh_start(logger, "guide", url)

    response = await fetch_url(
        url,
        timeout=config.http_timeout_sec,
        max_retries=config.http_max_retries,
        backoff_factor=config.http_backoff_factor,
        user_agent=config.user_agent,
        transport=transport,
    )

    schedule = await run_parser(
        parse_schedule,
        response.content,
        parse_timeout_seconds=config.parse_timeout_sec,
    )
    log_refresh_end(
        logger,
        "guide",
        f"{len(schedule.channels)} channels, {len(schedule.programmes)} programmes",
    )
    return schedule


async def run_parser(
    parse_func: Callable[..., T],
    payload,
    *,
    parse_timeout_seconds: int | None = None,
) -> T:
    """
    Run a parser in the thread pool with timeout protection.

    Parsing is offloaded to avoid blocking the event loop while large
    documents are processed.

    Keyword Args:
        parse_timeout_seconds: Timeout in seconds for parsing (0/None disables timeout)

    Raises:
        RefreshError: If parsing times out
    """
    effective_timeout = parse_timeout_seconds if parse_timeout_seconds and parse_timeout_seconds > 0 else None

    loop = asyncio.get_running_loop()
    parse_task = loop.run_in_executor(None, parse_func, payload)
    try:
        if effective_timeout:
            return await asyncio.wait_for(parse_task, timeout=effective_timeout)
        return await parse_task
    except asyncio.TimeoutError:
        logger.error("Parsing timed out after %ss", effective_timeout)
        raise RefreshError(
            f"Parsing timed out after {effective_timeout}s - document may be too large",
        )


def _require_url(url: str | None, env_name: str) -> str:
    if not url:
        raise RefreshError(f"{env_name} not configured")
    return url
