from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys for the web client"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProgrammeResult(CamelModel):
    """Single programme search hit"""
    channel_name: str = Field(..., description="Guide display name of the channel")
    channel_group: str | None = Field(None, description="Playlist group of the channel, if offered")
    programme_title: str
    programme_desc: str
    start: datetime = Field(..., description="Start time with the guide's UTC offset")
    stop: datetime = Field(..., description="Stop time with the guide's UTC offset")


class ChannelResult(CamelModel):
    """Single channel search hit"""
    channel_name: str


class SearchResult(CamelModel):
    """Search response"""
    programmes: list[ProgrammeResult]
    channels: list[ChannelResult]


class CacheStatus(CamelModel):
    """Freshness of one cache slot"""
    name: str
    empty: bool
    stale: bool
    refreshing: bool
    age_seconds: float | None
    next_check: datetime | None


class HealthResponse(CamelModel):
    """Health check response"""
    status: str
    scheduler_running: bool
    caches: list[CacheStatus]
