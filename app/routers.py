from typing import Annotated
import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask

from app.config import settings
from app.dependencies import AppState, get_app_state, get_proxy_transport
from app.schemas import CacheStatus, ChannelResult, HealthResponse, ProgrammeResult, SearchResult
from app.services import search_channels, search_programmes, staleness_scheduler
from app.errors import NoDataAvailable
from app.utils.logging_helpers import sanitize_url_for_logging
from app.utils.timezone import utc_now


logger = logging.getLogger(__name__)

main_router = APIRouter()

M3U_MEDIA_TYPE = "audio/x-mpegurl"
XMLTV_MEDIA_TYPE = "application/xml"

# Hop-by-hop headers that must not be copied from the upstream stream
_SKIPPED_PROXY_HEADERS = {"transfer-encoding", "connection"}


def _check_password(pw: str | None) -> None:
    if settings.password and pw != settings.password:
        raise HTTPException(status_code=401, detail="Unauthorized")


def _unavailable(exc: NoDataAvailable) -> HTTPException:
    logger.error("Request failed, no cached data: %s", exc)
    return HTTPException(status_code=503, detail=str(exc))


@main_router.get("/")
async def download_playlist(
    state: Annotated[AppState, Depends(get_app_state)],
    pw: Annotated[str | None, Query()] = None,
) -> Response:
    """Download the filtered playlist as M3U"""
    _check_password(pw)
    try:
        playlist = await state.get_playlist()
    except NoDataAvailable as exc:
        raise _unavailable(exc)

    return Response(content=playlist.to_text(), media_type=M3U_MEDIA_TYPE)


@main_router.get("/epg")
async def download_epg(
    state: Annotated[AppState, Depends(get_app_state)],
    pw: Annotated[str | None, Query()] = None,
) -> Response:
    """Download the guide, narrowed to channels offered by the filtered playlist"""
    _check_password(pw)
    try:
        playlist = await state.get_playlist()
        schedule = await state.get_schedule()
    except NoDataAvailable as exc:
        raise _unavailable(exc)

    schedule.prune_channels(playlist.entry_map().keys())
    return Response(content=schedule.serialize(), media_type=XMLTV_MEDIA_TYPE)


@main_router.get("/search", response_model=SearchResult)
async def search(
    state: Annotated[AppState, Depends(get_app_state)],
    q: Annotated[str, Query(min_length=1)],
    include_hidden: Annotated[bool, Query(alias="includeHidden")] = False,
) -> SearchResult:
    """
    Search programmes by title/description and channels by name

    Args:
        q: Case-insensitive search text
        include_hidden: Also return channels removed by the playlist filters
    """
    try:
        schedule = await state.get_schedule()
        playlist = await state.get_playlist()
    except NoDataAvailable as exc:
        raise _unavailable(exc)

    matches = search_programmes(schedule, playlist, q, utc_now(), include_hidden=include_hidden)
    channels = search_channels(playlist, q, include_hidden=include_hidden)

    logger.info(f"Search {q!r}: {len(matches)} programmes, {len(channels)} channels")

    return SearchResult(
        programmes=[
            ProgrammeResult(
                channel_name=match.channel_name,
                channel_group=match.channel_group,
                programme_title=match.programme.title,
                programme_desc=match.programme.description,
                start=match.programme.start,
                stop=match.programme.stop,
            )
            for match in matches
        ],
        channels=[ChannelResult(channel_name=entry.stream_name) for entry in channels],
    )


@main_router.get("/health", response_model=HealthResponse)
async def health_check(
    state: Annotated[AppState, Depends(get_app_state)],
) -> HealthResponse:
    """Health check endpoint"""
    caches = [state.playlist_cache, state.schedule_cache]
    return HealthResponse(
        status="ok" if not any(cache.is_empty() for cache in caches) else "starting",
        scheduler_running=staleness_scheduler.is_running(),
        caches=[
            CacheStatus(
                name=cache.name,
                empty=cache.is_empty(),
                stale=cache.is_stale(),
                refreshing=cache.is_refreshing(),
                age_seconds=cache.age(),
                next_check=staleness_scheduler.get_next_run_time(cache),
            )
            for cache in caches
        ],
    )


@main_router.get("/proxy/{stream_path:path}")
async def proxy_stream(
    stream_path: str,
    transport: Annotated[httpx.AsyncBaseTransport | None, Depends(get_proxy_transport)],
) -> StreamingResponse:
    """Pipe an upstream stream through to the client"""
    client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http_timeout_sec, read=None),
        headers={"User-Agent": settings.user_agent},
        follow_redirects=True,
        transport=transport,
    )
    try:
        upstream = await client.send(client.build_request("GET", stream_path), stream=True)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        await client.aclose()
        logger.warning(f"Proxy fetch failed for {sanitize_url_for_logging(stream_path)}: {exc}")
        raise HTTPException(status_code=502, detail=f"Failed to fetch stream: {exc}")

    async def close_upstream() -> None:
        await upstream.aclose()
        await client.aclose()

    headers = {
        name: value
        for name, value in upstream.headers.items()
        if name.lower() not in _SKIPPED_PROXY_HEADERS
    }
    headers["Access-Control-Allow-Origin"] = "*"
    headers["Access-Control-Allow-Methods"] = "GET, OPTIONS"

    return StreamingResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        headers=headers,
        background=BackgroundTask(close_upstream),
    )
