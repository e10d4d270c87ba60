"""
Karaoke Queue Service - Spotify Client Tests

Tests for the karaoke/services/spotify.py module. Validates:
- TokenCache expiry with an injected clock
- App token fetch (basic auth, caching, refresh after expiry)
- Track lookup mapping to a catalog SourceTrack
- Error mapping (unconfigured, 404, upstream failures, transport errors)
- Track search and limit clamping
"""

import base64

import httpx
import pytest

from karaoke.errors import InfrastructureError, NotFoundError, ValidationError
from karaoke.models import SongSource
from karaoke.services.spotify import SpotifyClient, SpotifyTrack, TokenCache
from tests.conftest import run

TRACK_JSON = {
    "id": "3z8h0TU7ReDPLIbEnYhWZb",
    "name": "Bohemian Rhapsody",
    "artists": [{"name": "Queen"}],
    "duration_ms": 354_320,
    "album": {
        "name": "A Night at the Opera",
        "images": [
            {"url": "https://i.scdn.co/small.jpg", "width": 64, "height": 64},
            {"url": "https://i.scdn.co/large.jpg", "width": 640, "height": 640},
        ],
    },
}


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class SpotifyStub:
    """httpx MockTransport handler emulating the accounts and Web API hosts."""

    def __init__(self, track_status: int = 200, expires_in: int = 3600):
        self.track_status = track_status
        self.expires_in = expires_in
        self.token_calls = 0
        self.seen: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.seen.append(request)
        if request.url.path == "/api/token":
            self.token_calls += 1
            return httpx.Response(
                200,
                json={"access_token": f"tok-{self.token_calls}", "expires_in": self.expires_in},
            )
        if request.url.path.startswith("/v1/tracks/"):
            if self.track_status != 200:
                return httpx.Response(self.track_status, json={"error": "x"})
            return httpx.Response(200, json=TRACK_JSON)
        if request.url.path == "/v1/search":
            return httpx.Response(200, json={"tracks": {"items": [TRACK_JSON, TRACK_JSON]}})
        return httpx.Response(404)


def _client(stub, clock=None, client_id="cid", client_secret="secret"):
    return SpotifyClient(
        client_id=client_id,
        client_secret=client_secret,
        cache=TokenCache(clock or FakeClock()),
        client=httpx.AsyncClient(transport=httpx.MockTransport(stub)),
        accounts_url="https://accounts.spotify.com",
        api_url="https://api.spotify.com/v1",
        expiry_margin=60,
    )


# ===========================================================================
# TokenCache
# ===========================================================================


class TestTokenCache:
    """Test the TTL cache."""

    def test_empty(self):
        assert TokenCache(FakeClock()).get() is None

    def test_valid_until_expiry(self):
        clock = FakeClock()
        cache = TokenCache(clock)
        cache.set("abc", ttl=10)
        clock.now += 9
        assert cache.get() == "abc"
        clock.now += 1
        assert cache.get() is None

    def test_clear(self):
        cache = TokenCache(FakeClock())
        cache.set("abc", ttl=10)
        cache.clear()
        assert cache.get() is None


# ===========================================================================
# get_app_token
# ===========================================================================


class TestAppToken:
    """Test client-credentials token handling."""

    def test_uses_basic_auth(self):
        stub = SpotifyStub()
        token = run(_client(stub).get_app_token())
        assert token == "tok-1"
        expected = base64.b64encode(b"cid:secret").decode()
        assert stub.seen[0].headers["Authorization"] == f"Basic {expected}"
        assert b"grant_type=client_credentials" in stub.seen[0].content

    def test_cached_until_margin(self):
        stub = SpotifyStub(expires_in=3600)
        clock = FakeClock()
        client = _client(stub, clock)

        async def scenario():
            first = await client.get_app_token()
            clock.now += 3539
            second = await client.get_app_token()
            clock.now += 1
            third = await client.get_app_token()
            return first, second, third

        assert run(scenario()) == ("tok-1", "tok-1", "tok-2")
        assert stub.token_calls == 2

    def test_unconfigured(self):
        client = _client(SpotifyStub(), client_id="", client_secret="")
        assert not client.is_configured
        with pytest.raises(InfrastructureError) as exc:
            run(client.get_app_token())
        assert exc.value.message == "Spotify integration not configured"

    def test_token_endpoint_failure(self):
        def handler(request):
            return httpx.Response(500)

        client = SpotifyClient(
            client_id="cid",
            client_secret="secret",
            cache=TokenCache(FakeClock()),
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        with pytest.raises(InfrastructureError):
            run(client.get_app_token())

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, content=b"<html>maintenance</html>"),
            httpx.Response(200, json={"token_type": "bearer"}),
        ],
    )
    def test_malformed_token_response(self, response):
        client = _client(lambda request: response)
        with pytest.raises(InfrastructureError) as exc:
            run(client.get_app_token())
        assert exc.value.message == "Spotify token request failed"
        assert client.cache.get() is None


# ===========================================================================
# get_track / search_tracks
# ===========================================================================


class TestTracks:
    """Test track lookup and search."""

    def test_get_track_maps_to_source_track(self):
        stub = SpotifyStub()
        track = run(_client(stub).get_track("3z8h0TU7ReDPLIbEnYhWZb"))
        assert stub.seen[-1].headers["Authorization"] == "Bearer tok-1"

        source = track.to_source_track()
        assert source.source is SongSource.SPOTIFY
        assert source.source_id == "3z8h0TU7ReDPLIbEnYhWZb"
        assert source.title == "Bohemian Rhapsody"
        assert source.artist == "Queen"
        assert source.duration_sec == 354
        assert source.cover_art_url == "https://i.scdn.co/large.jpg"

    def test_multi_artist_joined(self):
        data = dict(TRACK_JSON, artists=[{"name": "Queen"}, {"name": "David Bowie"}])
        assert SpotifyTrack.from_api(data).to_source_track().artist == "Queen David Bowie"

    def test_track_not_found(self):
        with pytest.raises(NotFoundError):
            run(_client(SpotifyStub(track_status=404)).get_track("missing"))

    def test_upstream_error(self):
        with pytest.raises(InfrastructureError):
            run(_client(SpotifyStub(track_status=502)).get_track("x"))

    def test_unauthorized_clears_cache(self):
        stub = SpotifyStub(track_status=401)
        client = _client(stub)
        with pytest.raises(InfrastructureError):
            run(client.get_track("x"))
        assert client.cache.get() is None

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("boom", request=request)

        with pytest.raises(InfrastructureError):
            run(_client(handler).get_app_token())

    def test_blank_track_id(self):
        with pytest.raises(ValidationError):
            run(_client(SpotifyStub()).get_track("  "))

    def test_search_clamps_limit(self):
        stub = SpotifyStub()
        tracks = run(_client(stub).search_tracks("queen", limit=500))
        assert len(tracks) == 2
        assert stub.seen[-1].url.params["limit"] == "50"
        assert stub.seen[-1].url.params["type"] == "track"

    def test_search_requires_query(self):
        with pytest.raises(ValidationError):
            run(_client(SpotifyStub()).search_tracks(""))

    def test_malformed_track_body(self):
        def handler(request):
            if request.url.path == "/api/token":
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            return httpx.Response(200, content=b"not json")

        with pytest.raises(InfrastructureError) as exc:
            run(_client(handler).get_track("x"))
        assert exc.value.message == "Spotify track lookup failed"

    def test_malformed_search_body(self):
        def handler(request):
            if request.url.path == "/api/token":
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            return httpx.Response(200, json={"tracks": {"items": [{"name": "No id"}]}})

        with pytest.raises(InfrastructureError):
            run(_client(handler).search_tracks("queen"))
