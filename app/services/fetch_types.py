"""
Shared dataclasses used across the playlist and schedule pipelines.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Generic, TypeVar


T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class PlaylistEntry:
    """One channel offering from the M3U playlist."""
    duration: int
    channel_id: str
    display_name: str
    logo_url: str
    group_title: str
    stream_name: str
    stream_url: str


@dataclass(frozen=True, slots=True)
class Channel:
    """Guide-side channel record."""
    id: str
    display_name: str
    icon_url: str | None = None


@dataclass(frozen=True, slots=True)
class Programme:
    """One scheduled broadcast. start/stop keep the source UTC offset."""
    start: datetime
    stop: datetime
    channel_id: str
    title: str
    description: str = ""


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """A cached value and the monotonic clock reading of its fetch."""
    value: T
    fetched_at: float


__all__ = ["PlaylistEntry", "Channel", "Programme", "CacheEntry"]
