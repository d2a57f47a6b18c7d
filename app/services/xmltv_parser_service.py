from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from xml.sax.saxutils import escape
import logging

from lxml import etree # type: ignore

from app.errors import MalformedSchedule
from app.services.fetch_types import Channel, Programme
from app.utils.timezone import format_xmltv_time, parse_xmltv_time

logger = logging.getLogger(__name__)

GENERATOR_INFO_NAME = "Sparrow TV"
GENERATOR_INFO_URL = "https://github.com/sparrow-tv"

XMLTV_PREAMBLE = (
    '<?xml version="1.0" encoding="utf-8"?>\n'
    '<!DOCTYPE tv SYSTEM "xmltv.dtd">\n'
    f'<tv generator-info-name="{GENERATOR_INFO_NAME}" generator-info-url="{GENERATOR_INFO_URL}">'
)
XMLTV_FOOTER = "\n</tv>"

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}


@dataclass
class ScheduleDocument:
    """Channels and programmes from one parse of an XMLTV feed"""

    channels: list[Channel] = field(default_factory=list)
    programmes: list[Programme] = field(default_factory=list)

    def channel_map(self) -> dict[str, Channel]:
        return {channel.id: channel for channel in self.channels}

    def search(self, query: str, now: datetime) -> list[Programme]:
        """
        Find current and upcoming programmes matching a text query

        Args:
            query: Case-insensitive substring matched against title or description
            now: Aware datetime; programmes that stopped before it are skipped

        Returns:
            Matching programmes ordered by start time (stable for ties)
        """
        needle = query.lower()
        matches = [
            programme
            for programme in self.programmes
            if programme.stop >= now
            and (needle in programme.title.lower() or needle in programme.description.lower())
        ]
        return sorted(matches, key=lambda programme: programme.start)

    def prune_channels(self, keep_ids: Iterable[str]) -> None:
        """Keep only channels and programmes whose channel id is in keep_ids"""
        keep_ids = set(keep_ids)
        before_channels = len(self.channels)
        before_programmes = len(self.programmes)

        self.channels = [channel for channel in self.channels if channel.id in keep_ids]
        self.programmes = [
            programme for programme in self.programmes if programme.channel_id in keep_ids
        ]

        logger.debug(
            "Pruned schedule: %s/%s channels, %s/%s programmes kept",
            len(self.channels),
            before_channels,
            len(self.programmes),
            before_programmes,
        )

    def serialize(self) -> str:
        """Render the document as XMLTV text"""
        parts = [XMLTV_PREAMBLE]

        for channel in self.channels:
            parts.append(f'\n<channel id="{escape_xml(channel.id)}">')
            parts.append(f"\n<display-name>{escape_xml(channel.display_name)}</display-name>")
            if channel.icon_url is not None:
                parts.append(f'\n<icon src="{escape_xml(channel.icon_url)}"/>')
            parts.append("\n</channel>")

        for programme in self.programmes:
            parts.append(
                f'\n<programme start="{format_xmltv_time(programme.start)}" '
                f'stop="{format_xmltv_time(programme.stop)}" '
                f'channel="{escape_xml(programme.channel_id)}">'
            )
            parts.append(f"\n<title>{escape_xml(programme.title)}</title>")
            parts.append(f"\n<desc>{escape_xml(programme.description)}</desc>")
            parts.append("\n</programme>")

        parts.append(XMLTV_FOOTER)
        return "".join(parts)


def escape_xml(value: str) -> str:
    """Escape & < > " ' and nothing else"""
    return escape(value, _XML_ENTITIES)


def parse_schedule(data: bytes) -> ScheduleDocument:
    """
    Parse XMLTV content into a ScheduleDocument

    Args:
        data: Raw XMLTV document bytes

    Returns:
        ScheduleDocument with channels and programmes in document order

    Raises:
        MalformedSchedule: If XML is malformed or a required field is missing
        MalformedTimestamp: If any start/stop value is not 'YYYYMMDDHHMMSS +HHMM'
    """
    logger.debug(f"Parsing XMLTV document ({len(data) / 1024 / 1024:.2f} MB)")

    parser = etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        huge_tree=True,
    )
    try:
        root = etree.fromstring(data, parser)
    except etree.XMLSyntaxError as e:
        logger.error(f"  XML parsing error: {e}")
        raise MalformedSchedule(f"Invalid XMLTV document: {e}") from e

    logger.debug(f"  XML document loaded (root tag: {root.tag})")

    channels = _parse_channels(root)
    programmes = _parse_programmes(root)

    logger.info(f"XMLTV parsing complete: {len(channels)} channels, {len(programmes)} programmes")

    return ScheduleDocument(channels=channels, programmes=programmes)


def _parse_channels(root: etree._Element) -> list[Channel]:
    """Extract channels from XMLTV root element"""
    channels = []

    for channel in root.findall('channel'):
        channel_id = channel.get('id')
        if not channel_id:
            raise MalformedSchedule("Channel element without id attribute")

        # First display name, falling back to the id
        display_name = _get_text(channel, 'display-name', default=channel_id)

        icon_url = None
        icon_elem = channel.find('icon')
        if icon_elem is not None:
            icon_url = icon_elem.get('src')

        channels.append(Channel(
            id=channel_id,
            display_name=display_name or channel_id,
            icon_url=icon_url
        ))

    return channels


def _parse_programmes(root: etree._Element) -> list[Programme]:
    """Extract programmes from XMLTV root element"""
    return [_parse_single_programme(programme) for programme in root.findall('programme')]


def _parse_single_programme(programme: etree._Element) -> Programme:
    """Parse single programme element"""
    channel_id = programme.get('channel')
    start_str = programme.get('start')
    stop_str = programme.get('stop')

    if not channel_id or start_str is None or stop_str is None:
        raise MalformedSchedule(
            f"Programme element missing channel/start/stop (line {programme.sourceline})"
        )

    title = _get_text(programme, 'title')
    if title is None:
        raise MalformedSchedule(
            f"Programme on {channel_id} at {start_str} has no title (line {programme.sourceline})"
        )

    return Programme(
        start=parse_xmltv_time(start_str),
        stop=parse_xmltv_time(stop_str),
        channel_id=channel_id,
        title=title,
        description=_get_text(programme, 'desc', default="") or "",
    )


def _get_text(element: etree._Element, tag: str, default: Optional[str] = None) -> Optional[str]:
    """Extract text from the first child with tag, or default when the child is missing"""
    child = element.find(tag)
    if child is None:
        return default
    return child.text or ""
