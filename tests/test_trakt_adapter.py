from __future__ import annotations

import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from postkinds_metadata.adapters import AdapterError
from postkinds_metadata.adapters.api.trakt import DEFAULT_BASE_URL, TraktAdapter, TraktClient

HISTORY = [
    {
        "id": 1982346,
        "watched_at": "2024-05-01T20:00:00.000Z",
        "action": "watch",
        "type": "movie",
        "movie": {"title": "Alien", "year": 1979, "ids": {"trakt": 295, "slug": "alien-1979", "imdb": "tt0078748", "tmdb": 348}},
    }
]


class TraktServer:
    """Minimal stand-in for the Trakt endpoints used by the adapter."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith("/search/"):
            return httpx.Response(
                200,
                json=[
                    {"type": "movie", "score": 10, "movie": {"title": "Alien", "year": 1979, "ids": {"trakt": 295}}},
                    {"type": "show", "score": 5, "show": {"title": "Alien Worlds", "year": 2020, "ids": {"trakt": 1, "tvdb": 9}}},
                ],
            )
        if path == "/movies/alien-1979":
            return httpx.Response(200, json={"title": "Alien", "released": "1979-05-25", "ids": {"trakt": 295, "imdb": "tt0078748"}, "genres": ["horror"]})
        if path == "/users/me/history":
            return httpx.Response(200, json=HISTORY)
        if path == "/sync/history":
            return httpx.Response(201, json={"added": {"movies": 1}})
        if path == "/oauth/token":
            return httpx.Response(200, json={"access_token": "new-token", "refresh_token": "new-refresh", "expires_in": 600, "created_at": 1})
        return httpx.Response(404, json={"error": "not found"})

    def paths(self, method: str = "GET") -> list[str]:
        return [request.url.path for request in self.requests if request.method == method]


def _adapter(make_client, server, credentials=None) -> TraktAdapter:
    client = make_client(
        server,
        TraktClient,
        name="trakt",
        base_url=DEFAULT_BASE_URL,
        credentials={"client_id": "cid", "client_secret": "secret", "access_token": "token", "refresh_token": "refresh"} if credentials is None else credentials,
    )
    return TraktAdapter(client=client)


def test_search_sends_api_headers_and_normalizes(make_client):
    server = TraktServer()
    adapter = _adapter(make_client, server)

    results = adapter.search("alien")

    assert [(record.type, record.title) for record in results] == [("movie", "Alien"), ("tv", "Alien Worlds")]
    assert results[1]["tvdb_id"] == 9
    request = server.requests[0]
    assert request.url.path == "/search/movie,show"
    assert request.headers["trakt-api-key"] == "cid"
    assert request.headers["trakt-api-version"] == "2"


def test_search_maps_tv_filter_to_show(make_client):
    server = TraktServer()
    _adapter(make_client, server).search("alien", media_type="tv")

    assert server.paths() == ["/search/show"]


def test_get_by_id_requires_prefix(make_client):
    server = TraktServer()
    adapter = _adapter(make_client, server)

    movie = adapter.get_by_id("movie:alien-1979")
    assert movie.title == "Alien"
    assert movie.date == "1979-05-25"
    assert movie["imdb_id"] == "tt0078748"
    assert server.requests[0].url.params["extended"] == "full"

    assert adapter.get_by_id("295") is None
    assert adapter.client.events.errors()[-1].context["operation"] == "get_by_id"


def test_history_is_cached_and_invalidated_by_mutation(make_client):
    server = TraktServer()
    adapter = _adapter(make_client, server)

    first = adapter.history()
    adapter.history()
    assert server.paths() == ["/users/me/history"]
    assert first[0]["history_id"] == 1982346
    assert first[0]["watched_at"] == "2024-05-01T20:00:00.000Z"
    assert first[0].title == "Alien"

    assert adapter.add_to_history("movie", {"trakt": 295}, watched_at="2024-05-02T10:00:00+00:00") is True
    body = json.loads(server.requests[-1].content)
    assert body == {"movies": [{"ids": {"trakt": 295}, "watched_at": "2024-05-02T10:00:00+00:00"}]}

    adapter.history()
    assert server.paths() == ["/users/me/history", "/users/me/history"]


def test_user_lists_need_access_token(make_client):
    server = TraktServer()
    adapter = _adapter(make_client, server, credentials={"client_id": "cid"})

    assert adapter.is_configured() is True
    assert adapter.is_authenticated() is False
    assert adapter.history() == []
    assert adapter.watchlist() == []
    with pytest.raises(AdapterError):
        adapter.add_to_history("movie", {"trakt": 295})
    assert server.requests == []


def test_mutation_rejects_unknown_item_type(make_client):
    adapter = _adapter(make_client, TraktServer())

    with pytest.raises(AdapterError):
        adapter.add_to_watchlist("boardgame", {"trakt": 1})


def test_oauth_helpers(make_client):
    server = TraktServer()
    client = _adapter(make_client, server).client

    url = urlparse(client.authorization_url("urn:ietf:wg:oauth:2.0:oob", state="xyz"))
    query = parse_qs(url.query)
    assert url.netloc == "trakt.tv"
    assert query["client_id"] == ["cid"]
    assert query["state"] == ["xyz"]

    grant = client.refresh_access_token()
    assert grant.access_token == "new-token"
    assert client.access_token == "new-token"
    assert client.refresh_token == "new-refresh"
    assert json.loads(server.requests[-1].content)["grant_type"] == "refresh_token"


def test_verify_uses_user_settings_when_authenticated(make_client):
    server = TraktServer()
    result = _adapter(make_client, server).verify()

    assert result.success is False
    assert server.paths() == ["/users/settings"]


def test_normalize_result_tolerates_missing_fields(make_client):
    adapter = _adapter(make_client, TraktServer())

    record = adapter.normalize_result({})
    episode = adapter.normalize_result({"type": "episode", "episode": {"season": 1, "number": 2}, "show": {"title": "X"}})

    assert record.type == "movie"
    assert record.id == ""
    assert episode.type == "episode"
    assert episode["number"] == 2
    assert episode["show"]["title"] == "X"
