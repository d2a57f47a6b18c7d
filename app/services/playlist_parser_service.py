"""
M3U Playlist Parsing Service

Parses extended M3U playlists into PlaylistEntry records and provides the
exclusion pipeline and serialization back to M3U text.

Providers do not agree on attribute order in '#EXTINF' headers, so every
recognized attribute is located independently instead of by position.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
from collections.abc import Iterable

from app.errors import MalformedEntry
from app.services.fetch_types import PlaylistEntry


logger = logging.getLogger(__name__)

PLAYLIST_HEADER = "#EXTM3U"
RECORD_MARKER = "#EXTINF:"

# Per-account session id echoed by the provider; re-served as this token
XUI_ID_PLACEHOLDER = "{XUI_ID}"

XUI_ID_KEY = "xui-id"
TVG_ID_KEY = "tvg-id"
TVG_NAME_KEY = "tvg-name"
TVG_LOGO_KEY = "tvg-logo"
GROUP_TITLE_KEY = "group-title"

RECOGNIZED_KEYS = (XUI_ID_KEY, TVG_ID_KEY, TVG_NAME_KEY, TVG_LOGO_KEY, GROUP_TITLE_KEY)


def parse_entry(raw_text: str) -> PlaylistEntry:
    """
    Parse one two-line playlist record

    Args:
        raw_text: '#EXTINF:<duration> <attrs>,<name>' followed by the URL line

    Returns:
        Parsed PlaylistEntry. The xui-id value is consumed but not kept.

    Raises:
        MalformedEntry: If the record is missing the marker, a required
            attribute, the name separator or the URL line
    """
    header, sep, rest = raw_text.partition("\n")
    header = header.rstrip("\r")
    if not sep:
        raise MalformedEntry(raw_text, "missing stream URL line")

    url = rest.split("\n", 1)[0].rstrip("\r")
    if not url:
        raise MalformedEntry(raw_text, "empty stream URL line")

    if not header.startswith(RECORD_MARKER):
        raise MalformedEntry(raw_text, f"missing {RECORD_MARKER} marker")

    duration, attrs_start = _parse_duration(header, raw_text)

    block_end = _find_block_end(header, attrs_start)
    if block_end < 0:
        raise MalformedEntry(raw_text, "missing ',' before channel name")

    attributes = _parse_attributes(header[attrs_start:block_end])
    missing = [key for key in RECOGNIZED_KEYS if key not in attributes]
    if missing:
        raise MalformedEntry(raw_text, f"missing attributes: {', '.join(missing)}")

    # xui-id is intentionally dropped here
    return PlaylistEntry(
        duration=duration,
        channel_id=attributes[TVG_ID_KEY],
        display_name=attributes[TVG_NAME_KEY],
        logo_url=attributes[TVG_LOGO_KEY],
        group_title=attributes[GROUP_TITLE_KEY],
        stream_name=header[block_end + 1:],
        stream_url=url,
    )


def _parse_duration(header: str, raw_text: str) -> tuple[int, int]:
    """Return the signed duration and the index right after it"""
    start = len(RECORD_MARKER)
    end = start
    while end < len(header) and not header[end].isspace() and header[end] != ",":
        end += 1

    token = header[start:end]
    try:
        return int(token), end
    except ValueError:
        raise MalformedEntry(raw_text, f"invalid duration {token!r}")


def _find_block_end(header: str, start: int) -> int:
    """Index of the first comma outside a quoted value, or -1"""
    in_quotes = False
    for index in range(start, len(header)):
        char = header[index]
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            return index
    return -1


def _parse_attributes(block: str) -> dict[str, str]:
    """
    Extract recognized key="value" pairs from an attribute block in any order

    From the cursor, every key not found yet is searched for and the earliest
    match is taken. Values end at the next '"'. Anything else in the block
    (unknown attributes, repeated keys) is skipped over.
    """
    found: dict[str, str] = {}
    cursor = 0

    while len(found) < len(RECOGNIZED_KEYS):
        best_key = None
        best_pos = -1
        for key in RECOGNIZED_KEYS:
            if key in found:
                continue
            pos = _find_marker(block, f'{key}="', cursor)
            if pos >= 0 and (best_pos < 0 or pos < best_pos):
                best_key, best_pos = key, pos

        if best_key is None:
            break

        value_start = best_pos + len(best_key) + 2
        value_end = block.find('"', value_start)
        if value_end < 0:
            break

        found[best_key] = block[value_start:value_end]
        cursor = value_end + 1

    return found


def _find_marker(block: str, marker: str, cursor: int) -> int:
    """Find marker at or after cursor where it starts a new attribute"""
    pos = block.find(marker, cursor)
    while pos > 0 and not block[pos - 1].isspace():
        pos = block.find(marker, pos + 1)
    return pos


def format_entry(entry: PlaylistEntry) -> str:
    """Serialize an entry back into its two-line record form"""
    return (
        f'{RECORD_MARKER}{entry.duration} {XUI_ID_KEY}="{XUI_ID_PLACEHOLDER}" '
        f'{TVG_ID_KEY}="{entry.channel_id}" {TVG_NAME_KEY}="{entry.display_name}" '
        f'{TVG_LOGO_KEY}="{entry.logo_url}" {GROUP_TITLE_KEY}="{entry.group_title}",'
        f"{entry.stream_name}\n{entry.stream_url}"
    )


@dataclass
class Playlist:
    """
    Parsed playlist with a full view and a filtered view.

    The exclusion methods narrow filtered_entries only and always replace the
    tuple instead of mutating it, so shallow copies stay independent.
    """

    entries: tuple[PlaylistEntry, ...] = ()
    filtered_entries: tuple[PlaylistEntry, ...] | None = None

    def __post_init__(self) -> None:
        self.entries = tuple(self.entries)
        if self.filtered_entries is None:
            self.filtered_entries = self.entries
        else:
            self.filtered_entries = tuple(self.filtered_entries)

    @classmethod
    def parse(cls, text: str) -> "Playlist":
        """
        Parse a full M3U document

        The first line is the document header and is skipped. The rest is read
        as two-line records; the first malformed record aborts the parse.

        Raises:
            MalformedEntry: On the first unparsable record
        """
        # Only '\n' ends a line; names may carry other Unicode line breaks
        lines = [line.removesuffix("\r") for line in text.split("\n")[1:]]
        while lines and not lines[-1].strip():
            lines.pop()

        entries = []
        for index in range(0, len(lines), 2):
            record = "\n".join(lines[index:index + 2]).strip()
            entries.append(parse_entry(record))

        logger.debug(f"Parsed playlist with {len(entries)} entries")
        return cls(entries=tuple(entries))

    def exclude_groups(self, names: Iterable[str]) -> int:
        """Drop entries whose group title equals one of names. Returns count removed."""
        names = set(names)
        return self._retain(lambda entry: entry.group_title not in names)

    def exclude_containing(self, snippets: Iterable[str]) -> int:
        """Drop entries whose group title contains any snippet (case-sensitive)."""
        snippets = list(snippets)
        return self._retain(
            lambda entry: not any(snippet in entry.group_title for snippet in snippets)
        )

    def exclude_file_extensions(self) -> int:
        """Drop entries whose URL ends in a file name (last path segment has a '.')."""
        return self._retain(lambda entry: "." not in entry.stream_url.rsplit("/", 1)[-1])

    def apply_filters(
        self,
        groups: Iterable[str] = (),
        snippets: Iterable[str] = (),
        drop_file_extensions: bool = True,
    ) -> None:
        """Run the exclusion pipeline: groups, then substrings, then extensions."""
        removed_groups = self.exclude_groups(groups)
        removed_snippets = self.exclude_containing(snippets)
        removed_files = self.exclude_file_extensions() if drop_file_extensions else 0
        logger.info(
            "Playlist filters removed %s by group, %s by snippet, %s file links (%s of %s kept)",
            removed_groups,
            removed_snippets,
            removed_files,
            len(self.filtered_entries),
            len(self.entries),
        )

    def _retain(self, keep) -> int:
        before = len(self.filtered_entries)
        self.filtered_entries = tuple(entry for entry in self.filtered_entries if keep(entry))
        return before - len(self.filtered_entries)

    def filtered_groups(self) -> list[str]:
        """Distinct group titles of the filtered view, in first-seen order"""
        return list(dict.fromkeys(entry.group_title for entry in self.filtered_entries))

    def entry_map(self, include_hidden: bool = False) -> dict[str, PlaylistEntry]:
        """Map channel id to the first entry carrying it"""
        source = self.entries if include_hidden else self.filtered_entries
        mapping: dict[str, PlaylistEntry] = {}
        for entry in source:
            if entry.channel_id:
                mapping.setdefault(entry.channel_id, entry)
        return mapping

    def to_text(self) -> str:
        """Serialize the filtered view back into M3U text"""
        records = [format_entry(entry) for entry in self.filtered_entries]
        return f"{PLAYLIST_HEADER}\n" + "\n".join(records)
