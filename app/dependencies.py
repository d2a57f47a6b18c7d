"""
Application State

Holds the two long-lived cache slots (playlist and guide) shared by request
handlers and the background staleness poller.
"""
import logging
from functools import partial

import httpx

from app.config import CustomSettings, settings
from app.services.freshness_cache import FreshnessCache
from app.services.playlist_parser_service import Playlist
from app.services.source_loader_service import load_playlist, load_schedule
from app.services.xmltv_parser_service import ScheduleDocument


logger = logging.getLogger(__name__)


class AppState:
    """Cache slots for the playlist and the guide."""

    def __init__(
        self,
        playlist_cache: FreshnessCache[Playlist],
        schedule_cache: FreshnessCache[ScheduleDocument],
    ):
        self.playlist_cache = playlist_cache
        self.schedule_cache = schedule_cache

    @classmethod
    def from_settings(
        cls,
        config: CustomSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "AppState":
        """Build caches whose loaders fetch the configured source URLs."""
        return cls(
            playlist_cache=FreshnessCache(
                "playlist",
                partial(load_playlist, config, transport),
                ttl_seconds=config.cache_ttl_sec,
            ),
            schedule_cache=FreshnessCache(
                "guide",
                partial(load_schedule, config, transport),
                ttl_seconds=config.cache_ttl_sec,
            ),
        )

    async def get_playlist(self) -> Playlist:
        """Playlist snapshot; raises NoDataAvailable before the first good fetch."""
        return await self.playlist_cache.get()

    async def get_schedule(self) -> ScheduleDocument:
        """Guide snapshot; raises NoDataAvailable before the first good fetch."""
        return await self.schedule_cache.get()

    async def prime(self) -> None:
        """
        Perform the first fetch of both sources.

        Raises:
            NoDataAvailable: If either source cannot be fetched and parsed
        """
        await self.playlist_cache.refresh(force=True)
        await self.schedule_cache.refresh(force=True)


# Global instance
_app_state: AppState | None = None


def get_app_state() -> AppState:
    """
    Get or create the global application state.

    Also used as a FastAPI dependency, so tests can override it.
    """
    global _app_state
    if _app_state is None:
        _app_state = AppState.from_settings(settings)
    return _app_state


def get_proxy_transport() -> httpx.AsyncBaseTransport | None:
    """Transport for proxied stream requests; None uses httpx's default."""
    return None


def reset_app_state() -> None:
    """
    Reset the application state (mainly for testing).

    WARNING: Only use this in test environments!
    """
    global _app_state
    _app_state = None
    logger.debug("Application state reset")
