"""
Search Service

Joins guide programmes to playlist entries by channel id and answers text
queries over programme titles/descriptions and channel names.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging

from app.services.fetch_types import Channel, PlaylistEntry, Programme
from app.services.playlist_parser_service import Playlist
from app.services.xmltv_parser_service import ScheduleDocument

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProgrammeMatch:
    """A programme with the channel name and group resolved for display"""
    programme: Programme
    channel_name: str
    channel_group: str | None


def join_channel_name(
    programme: Programme,
    channel_map: dict[str, Channel],
    playlist_map: dict[str, PlaylistEntry],
) -> tuple[str, str | None]:
    """
    Resolve display name and group label for a programme's channel

    Args:
        programme: Programme to resolve
        channel_map: Guide channels keyed by id
        playlist_map: Playlist entries keyed by channel id

    Returns:
        (display name, group title or None when the playlist does not offer it)
    """
    channel = channel_map.get(programme.channel_id)
    # Guides occasionally reference channels they never declare
    channel_name = channel.display_name if channel else programme.channel_id

    entry = playlist_map.get(programme.channel_id)
    return channel_name, entry.group_title if entry else None


def search_programmes(
    schedule: ScheduleDocument,
    playlist: Playlist,
    query: str,
    now: datetime,
    include_hidden: bool = False,
) -> list[ProgrammeMatch]:
    """
    Search current and future programmes and attach channel info

    Programmes on channels without a surviving playlist entry are dropped
    unless include_hidden is set, which also joins against the full
    (unfiltered) playlist.
    """
    channel_map = schedule.channel_map()
    playlist_map = playlist.entry_map(include_hidden=include_hidden)

    results = []
    for programme in schedule.search(query, now):
        channel_name, channel_group = join_channel_name(programme, channel_map, playlist_map)
        if channel_group is None and not include_hidden:
            continue
        results.append(ProgrammeMatch(
            programme=programme,
            channel_name=channel_name,
            channel_group=channel_group,
        ))

    logger.debug(
        "Programme search %r: %s results (include_hidden=%s)",
        query,
        len(results),
        include_hidden,
    )
    return results


def search_channels(
    playlist: Playlist,
    query: str,
    include_hidden: bool = False,
) -> list[PlaylistEntry]:
    """Playlist entries whose stream name contains query, case-insensitive"""
    needle = query.lower()
    source = playlist.entries if include_hidden else playlist.filtered_entries
    return [entry for entry in source if needle in entry.stream_name.lower()]
