"""
Tests for the HTTP routes.
"""
import httpx
import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.dependencies import AppState, get_app_state, get_proxy_transport
from app.errors import UpstreamFetchFailed
from app.main import app
from app.services.freshness_cache import FreshnessCache
from app.services.playlist_parser_service import Playlist

from tests.conftest import SAMPLE_M3U


def _loader(value):
    async def load():
        return value
    return load


async def _failing_loader():
    raise UpstreamFetchFailed("http://provider.test/xmltv.php", "HTTP 500", 500)


@pytest.fixture
def playlist() -> Playlist:
    playlist = Playlist.parse(SAMPLE_M3U)
    playlist.apply_filters(["Sport"], ["PL"])
    return playlist


@pytest.fixture
def state(playlist, live_schedule) -> AppState:
    return AppState(
        playlist_cache=FreshnessCache("playlist", _loader(playlist), ttl_seconds=3600),
        schedule_cache=FreshnessCache("guide", _loader(live_schedule), ttl_seconds=3600),
    )


@pytest.fixture
def client(state, monkeypatch):
    monkeypatch.setattr(settings, "password", None)
    app.dependency_overrides[get_app_state] = lambda: state
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestPlaylistRoute:
    """Test GET /"""

    def test_returns_filtered_playlist(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("audio/x-mpegurl")
        lines = response.text.split("\n")
        assert lines[0] == "#EXTM3U"
        assert len(lines) == 3
        assert 'tvg-id="abc.se"' in lines[1]
        assert 'xui-id="{XUI_ID}"' in lines[1]
        assert lines[2] == "http://host/a/b/360"

    def test_password_required(self, client, monkeypatch):
        monkeypatch.setattr(settings, "password", "secret")
        assert client.get("/").status_code == 401
        assert client.get("/", params={"pw": "wrong"}).status_code == 401
        assert client.get("/", params={"pw": "secret"}).status_code == 200


class TestEpgRoute:
    """Test GET /epg"""

    def test_guide_is_narrowed_to_playlist_channels(self, client):
        response = client.get("/epg")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        body = response.text
        assert body.startswith('<?xml version="1.0" encoding="utf-8"?>')
        assert '<channel id="abc.se">' in body
        assert "sport.se" not in body
        assert "tvp.pl" not in body
        assert "<title>Evening News</title>" in body
        assert body.endswith("</tv>")

    def test_pruning_does_not_touch_cached_guide(self, client, state):
        client.get("/epg")
        response = client.get("/search", params={"q": "football", "includeHidden": "true"})
        assert [p["programmeTitle"] for p in response.json()["programmes"]] == ["Football Tonight"]

    def test_password_required(self, client, monkeypatch):
        monkeypatch.setattr(settings, "password", "secret")
        assert client.get("/epg").status_code == 401

    def test_cold_cache_failure_is_503(self, client, state):
        state.schedule_cache = FreshnessCache("guide", _failing_loader, ttl_seconds=3600)
        response = client.get("/epg")
        assert response.status_code == 503


class TestSearchRoute:
    """Test GET /search"""

    def test_programmes_and_channels(self, client):
        response = client.get("/search", params={"q": "NEWS"})
        assert response.status_code == 200
        data = response.json()
        assert [p["programmeTitle"] for p in data["programmes"]] == ["Evening News"]
        hit = data["programmes"][0]
        assert hit["channelName"] == "ABC"
        assert hit["channelGroup"] == "Sweden"
        assert hit["programmeDesc"] == "Headlines"
        assert hit["start"].endswith("+01:00")
        assert data["channels"] == []

    def test_include_hidden(self, client):
        response = client.get("/search", params={"q": "news", "includeHidden": "true"})
        titles = [p["programmeTitle"] for p in response.json()["programmes"]]
        assert titles == ["Football Tonight", "Evening News", "Wiadomosci"]

    def test_channel_hits(self, client):
        response = client.get("/search", params={"q": "hd"})
        assert response.json()["channels"] == [{"channelName": "ABC FHD"}]
        response = client.get("/search", params={"q": "hd", "includeHidden": "true"})
        assert [c["channelName"] for c in response.json()["channels"]] == ["ABC FHD", "Sport 1 HD"]

    def test_query_is_required(self, client):
        assert client.get("/search").status_code == 422
        assert client.get("/search", params={"q": ""}).status_code == 422


class TestHealthRoute:
    """Test GET /health"""

    def test_starting_before_first_fetch(self, client):
        data = client.get("/health").json()
        assert data["status"] == "starting"
        assert [cache["name"] for cache in data["caches"]] == ["playlist", "guide"]
        assert all(cache["empty"] for cache in data["caches"])

    def test_ok_after_fetch(self, client):
        client.get("/epg")
        data = client.get("/health").json()
        assert data["status"] == "ok"
        assert not any(cache["stale"] for cache in data["caches"])
        assert data["schedulerRunning"] is False


class StreamUpstream:
    """httpx handler standing in for the stream origin"""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.refuse = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.refuse:
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.path == "/missing.ts":
            return httpx.Response(404, text="not found")
        return httpx.Response(
            200,
            headers={
                "Content-Type": "video/mp2t",
                "Connection": "keep-alive",
                "X-Origin": "upstream",
            },
            content=b"\x47" * 188,
        )


@pytest.fixture
def stream_upstream(client) -> StreamUpstream:
    upstream = StreamUpstream()
    app.dependency_overrides[get_proxy_transport] = lambda: httpx.MockTransport(upstream)
    return upstream


class TestProxyRoute:
    """Test GET /proxy/{stream_path}"""

    def test_streams_body_and_headers(self, client, stream_upstream):
        response = client.get("/proxy/http://origin.test/live/1.ts")
        assert response.status_code == 200
        assert response.content == b"\x47" * 188
        assert response.headers["content-type"] == "video/mp2t"
        assert response.headers["x-origin"] == "upstream"
        assert response.headers["access-control-allow-origin"] == "*"
        assert response.headers["access-control-allow-methods"] == "GET, OPTIONS"
        assert "connection" not in response.headers

        forwarded = stream_upstream.requests[0]
        assert str(forwarded.url) == "http://origin.test/live/1.ts"
        assert forwarded.headers["User-Agent"] == settings.user_agent

    def test_upstream_status_is_passed_through(self, client, stream_upstream):
        response = client.get("/proxy/http://origin.test/missing.ts")
        assert response.status_code == 404
        assert response.text == "not found"

    def test_unreachable_upstream_is_502(self, client, stream_upstream):
        stream_upstream.refuse = True
        response = client.get("/proxy/http://origin.test/live/1.ts")
        assert response.status_code == 502
