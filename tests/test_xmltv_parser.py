"""
Tests for XMLTV timestamp handling, parsing, serialization and pruning.
"""
from datetime import timedelta, timezone

import pytest

from app.errors import MalformedSchedule, MalformedTimestamp
from app.services.fetch_types import Channel, Programme
from app.services.xmltv_parser_service import (
    XMLTV_PREAMBLE,
    ScheduleDocument,
    escape_xml,
    parse_schedule,
)
from app.utils.timezone import format_xmltv_time, parse_xmltv_time

from tests.conftest import SAMPLE_XMLTV


class TestXmltvTime:
    """Test strict XMLTV timestamp parsing."""

    def test_parse_keeps_offset(self):
        parsed = parse_xmltv_time("20241017130900 +0100")
        assert parsed.isoformat() == "2024-10-17T13:09:00+01:00"
        assert parsed.utcoffset() == timedelta(hours=1)

    @pytest.mark.parametrize("literal", [
        "20241017130900 +0100",
        "20241231235959 -0530",
        "20240101000000 +0000",
        "20240601120000 +1345",
    ])
    def test_format_reproduces_literal(self, literal):
        assert format_xmltv_time(parse_xmltv_time(literal)) == literal

    @pytest.mark.parametrize("literal", [
        "20241017130900",
        "2024101713090 +0100",
        "20241017130900 +01:00",
        "20241017130900  +0100",
        "20241017130900 Z",
        " 20241017130900 +0100",
        "20241317130900 +0100",
        "20241017250000 +0100",
        "２０２４１０１７１３０９００ +0100",
        "20241017130900 +٠١٠٠",
        "",
    ])
    def test_rejects_non_conforming(self, literal):
        with pytest.raises(MalformedTimestamp) as exc_info:
            parse_xmltv_time(literal)
        assert exc_info.value.value == literal

    def test_format_naive_as_utc(self):
        naive = parse_xmltv_time("20241017130900 +0000").replace(tzinfo=None)
        assert format_xmltv_time(naive) == "20241017130900 +0000"


class TestParseSchedule:
    """Test XMLTV document parsing."""

    def test_channels(self):
        doc = parse_schedule(SAMPLE_XMLTV)
        assert doc.channels == [
            Channel(id="abc.se", display_name="ABC", icon_url="http://logo/abc.png"),
            Channel(id="sport.se", display_name="Sport & Co", icon_url=None),
        ]

    def test_programmes(self):
        doc = parse_schedule(SAMPLE_XMLTV)
        assert len(doc.programmes) == 2
        news, football = doc.programmes
        assert news.channel_id == "abc.se"
        assert news.title == "Morning News"
        assert news.description == "Daily news from Stockholm"
        assert news.start.isoformat() == "2024-10-17T13:09:00+01:00"
        assert news.stop.isoformat() == "2024-10-17T14:00:00+01:00"
        assert football.description == ""

    def test_bad_timestamp_fails_whole_document(self):
        broken = SAMPLE_XMLTV.replace(b'stop="20241017150000 +0100"', b'stop="2024-10-17 15:00"')
        with pytest.raises(MalformedTimestamp):
            parse_schedule(broken)

    def test_missing_title_fails(self):
        broken = SAMPLE_XMLTV.replace(b"<title>Football</title>", b"")
        with pytest.raises(MalformedSchedule):
            parse_schedule(broken)

    def test_missing_channel_attribute_fails(self):
        broken = SAMPLE_XMLTV.replace(b'channel="sport.se"', b"")
        with pytest.raises(MalformedSchedule):
            parse_schedule(broken)

    def test_invalid_xml(self):
        with pytest.raises(MalformedSchedule):
            parse_schedule(b"<tv><channel id='a'></tv>")

    def test_display_name_falls_back_to_id(self):
        doc = parse_schedule(b'<tv><channel id="x.se"/></tv>')
        assert doc.channels == [Channel(id="x.se", display_name="x.se")]

    def test_empty_guide(self):
        doc = parse_schedule(b"<tv/>")
        assert doc.channels == []
        assert doc.programmes == []


class TestSerialize:
    """Test XMLTV output."""

    def test_escape_xml(self):
        assert escape_xml("""Tom & Jerry's <"Show">""") == (
            "Tom &amp; Jerry&apos;s &lt;&quot;Show&quot;&gt;"
        )

    def test_layout(self):
        doc = parse_schedule(SAMPLE_XMLTV)
        xml = doc.serialize()
        assert xml.startswith(XMLTV_PREAMBLE)
        assert xml.endswith("\n</tv>")
        assert '\n<channel id="abc.se">\n<display-name>ABC</display-name>\n<icon src="http://logo/abc.png"/>\n</channel>' in xml
        assert "\n<display-name>Sport &amp; Co</display-name>\n</channel>" in xml
        assert '\n<programme start="20241017130900 +0100" stop="20241017140000 +0100" channel="abc.se">' in xml
        assert "\n<title>Football</title>\n<desc></desc>\n</programme>" in xml

    def test_serialized_output_parses_back(self):
        doc = parse_schedule(SAMPLE_XMLTV)
        reparsed = parse_schedule(doc.serialize().encode("utf-8"))
        assert reparsed == doc

    def test_escaped_text_survives_reparse(self):
        start = parse_xmltv_time("20241017130900 -0400")
        doc = ScheduleDocument(
            channels=[Channel(id="a&b", display_name="<A & B>")],
            programmes=[Programme(
                start=start,
                stop=start + timedelta(hours=1),
                channel_id="a&b",
                title="It's \"live\"",
                description="1 < 2",
            )],
        )
        reparsed = parse_schedule(doc.serialize().encode("utf-8"))
        assert reparsed == doc
        assert reparsed.programmes[0].stop.tzinfo.utcoffset(None) == timedelta(hours=-4)


class TestPruneChannels:
    """Test narrowing a guide to a channel set."""

    def test_prune(self):
        doc = parse_schedule(SAMPLE_XMLTV)
        doc.prune_channels({"abc.se", "unknown.se"})
        assert [channel.id for channel in doc.channels] == ["abc.se"]
        assert [programme.channel_id for programme in doc.programmes] == ["abc.se"]

    def test_prune_to_nothing(self):
        doc = parse_schedule(SAMPLE_XMLTV)
        doc.prune_channels([])
        assert doc.channels == []
        assert doc.programmes == []
        assert doc.serialize() == XMLTV_PREAMBLE + "\n</tv>"

    def test_prune_keeps_original_lists_intact(self):
        doc = parse_schedule(SAMPLE_XMLTV)
        channels, programmes = doc.channels, doc.programmes
        doc.prune_channels({"abc.se"})
        assert len(channels) == 2
        assert len(programmes) == 2


def test_utc_offset_zero_is_utc():
    parsed = parse_xmltv_time("20240101000000 +0000")
    assert parsed.utcoffset() == timezone.utc.utcoffset(None)
