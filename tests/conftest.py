"""
Shared fixtures for the Sparrow TV test suite.
"""
from datetime import datetime, timedelta, timezone

import pytest

from app.services.fetch_types import Channel, Programme
from app.services.playlist_parser_service import Playlist
from app.services.xmltv_parser_service import ScheduleDocument


SAMPLE_M3U = '''#EXTM3U
#EXTINF:-1 xui-id="{X}" tvg-id="abc.se" tvg-name="ABC" tvg-logo="http://logo" group-title="Sweden",ABC FHD
http://host/a/b/360
#EXTINF:-1 xui-id="91" tvg-id="sport.se" tvg-name="Sport" tvg-logo="" group-title="Sport",Sport 1 HD
http://host/a/b/361
#EXTINF:-1 xui-id="92" tvg-id="tvp.pl" tvg-name="TVP" tvg-logo="" group-title="PL| Poland",TVP 1
http://host/a/b/362
#EXTINF:-1 xui-id="93" tvg-id="" tvg-name="Some Movie" tvg-logo="" group-title="Movies",Some Movie (2019)
http://host/movie/a/b/900.mkv
'''

SAMPLE_XMLTV = b'''<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE tv SYSTEM "xmltv.dtd">
<tv generator-info-name="upstream">
  <channel id="abc.se">
    <display-name>ABC</display-name>
    <icon src="http://logo/abc.png"/>
  </channel>
  <channel id="sport.se">
    <display-name>Sport &amp; Co</display-name>
  </channel>
  <programme start="20241017130900 +0100" stop="20241017140000 +0100" channel="abc.se">
    <title>Morning News</title>
    <desc>Daily news from Stockholm</desc>
  </programme>
  <programme start="20241017140000 +0100" stop="20241017150000 +0100" channel="sport.se">
    <title>Football</title>
  </programme>
</tv>
'''


@pytest.fixture
def sample_playlist() -> Playlist:
    return Playlist.parse(SAMPLE_M3U)


@pytest.fixture
def live_schedule() -> ScheduleDocument:
    """Guide whose programmes sit around the current time"""
    now = datetime.now(timezone.utc).replace(microsecond=0)
    cet = timezone(timedelta(hours=1))
    return ScheduleDocument(
        channels=[
            Channel(id="abc.se", display_name="ABC", icon_url="http://logo/abc.png"),
            Channel(id="sport.se", display_name="Sport Channel"),
            Channel(id="tvp.pl", display_name="TVP"),
        ],
        programmes=[
            Programme(
                start=(now - timedelta(hours=3)).astimezone(cet),
                stop=(now - timedelta(hours=2)).astimezone(cet),
                channel_id="abc.se",
                title="Old News",
                description="Yesterday's headlines",
            ),
            Programme(
                start=(now + timedelta(hours=1)).astimezone(cet),
                stop=(now + timedelta(hours=2)).astimezone(cet),
                channel_id="abc.se",
                title="Evening News",
                description="Headlines",
            ),
            Programme(
                start=now - timedelta(minutes=30),
                stop=now + timedelta(minutes=30),
                channel_id="sport.se",
                title="Football Tonight",
                description="Live news from the league",
            ),
            Programme(
                start=now + timedelta(hours=3),
                stop=now + timedelta(hours=4),
                channel_id="tvp.pl",
                title="Wiadomosci",
                description="Polish news",
            ),
        ],
    )
