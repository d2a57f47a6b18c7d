"""
Services package for Sparrow TV

This package contains the parsers, the freshness cache and the search logic.
"""
from app.services.freshness_cache import FreshnessCache
from app.services.playlist_parser_service import Playlist, parse_entry
from app.services.scheduler_service import staleness_scheduler
from app.services.search_service import search_channels, search_programmes
from app.services.xmltv_parser_service import ScheduleDocument, parse_schedule

__all__ = [
    'FreshnessCache',
    'Playlist',
    'parse_entry',
    'staleness_scheduler',
    'search_channels',
    'search_programmes',
    'ScheduleDocument',
    'parse_schedule',
]
