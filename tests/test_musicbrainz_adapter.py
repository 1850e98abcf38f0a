from __future__ import annotations

import httpx

from postkinds_metadata.adapters.api.musicbrainz import (
    DEFAULT_BASE_URL,
    MusicBrainzAdapter,
    MusicBrainzClient,
    artist_credit,
    cover_art_url,
    escape_lucene,
    lucene_query,
)

RELEASE_ID = "6defd963-fe91-4550-b18e-82c685603c2b"
RECORDING_ID = "b1a9c0e9-d987-4042-ae91-78d6a3267d69"
QUEEN_ID = "0383dadf-2a4e-4d10-a46a-e9e041da8eb3"

RECORDING = {
    "id": RECORDING_ID,
    "title": "Bohemian Rhapsody",
    "length": 354320,
    "score": 100,
    "first-release-date": "1975-10-31",
    "artist-credit": [{"name": "Queen", "joinphrase": "", "artist": {"id": QUEEN_ID, "name": "Queen"}}],
    "releases": [{"id": RELEASE_ID, "title": "A Night at the Opera", "date": "1975-11-21", "country": "GB"}],
    "isrcs": ["GBUM71029604"],
}
RELEASE = {
    "id": RELEASE_ID,
    "title": "A Night at the Opera",
    "date": "1975-11-21",
    "country": "GB",
    "status": "Official",
    "score": 98,
    "track-count": 12,
    "barcode": "077778915228",
    "artist-credit": [{"name": "Queen", "joinphrase": "", "artist": {"id": QUEEN_ID}}],
    "release-group": {"id": "rg-1", "primary-type": "Album"},
    "media": [
        {
            "position": 1,
            "track-count": 2,
            "tracks": [
                {"position": 1, "title": "Death on Two Legs", "length": 223000, "recording": {"id": "r-1"}},
                {"position": 11, "length": 354320, "recording": {"id": RECORDING_ID, "title": "Bohemian Rhapsody"}},
            ],
        }
    ],
}


class MusicServer:
    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/ws/2/")
        if path == "recording":
            return httpx.Response(200, json={"count": 1, "recordings": [RECORDING]})
        if path == "release":
            return httpx.Response(200, json={"count": 1, "releases": [RELEASE]})
        if path == "artist":
            return httpx.Response(200, json={"artists": [{"id": QUEEN_ID, "name": "Queen", "sort-name": "Queen", "type": "Group", "country": "GB", "score": 100}, {"id": "x"}]})
        if path == "artist/5b11f4ce-a62d-471e-81fc-a69a8278c7da":
            return httpx.Response(200, json={"id": "5b11f4ce-a62d-471e-81fc-a69a8278c7da", "name": "Nirvana"})
        if path == f"recording/{RECORDING_ID}":
            return httpx.Response(200, json=RECORDING)
        if path == f"release/{RELEASE_ID}":
            return httpx.Response(200, json=RELEASE)
        return httpx.Response(404, json={"error": "Not Found"})


def _adapter(make_client, handler, **options) -> MusicBrainzAdapter:
    client = make_client(handler, MusicBrainzClient, name="musicbrainz", base_url=DEFAULT_BASE_URL, **options)
    return MusicBrainzAdapter(client=client)


def test_lucene_escaping():
    assert escape_lucene("AC/DC") == "AC\\/DC"
    assert escape_lucene("Rock && Roll") == "Rock \\&\\& Roll"
    assert escape_lucene('say "hi"?') == 'say \\"hi\\"\\?'
    assert escape_lucene("back\\slash") == "back\\\\slash"
    assert escape_lucene("plain words") == "plain words"
    assert lucene_query("recording", "Help!", artist="The Beatles") == 'recording:"Help\\!" AND artist:"The Beatles"'


def test_artist_credit_joins_phrases():
    credits = [
        {"name": "David Bowie", "joinphrase": " & ", "artist": {"id": "a-1"}},
        {"artist": {"id": "a-2", "name": "Queen"}, "joinphrase": " "},
    ]

    assert artist_credit(credits) == ("David Bowie & Queen", "a-1")
    assert artist_credit(None) == ("", "")


def test_cover_art_url():
    assert cover_art_url(RELEASE_ID) == f"https://coverartarchive.org/release/{RELEASE_ID}/front-250"
    assert cover_art_url(RELEASE_ID, None).endswith("/front")
    assert cover_art_url("") == ""


def test_search_recordings_builds_query_and_normalizes(make_client):
    server = MusicServer()

    results = _adapter(make_client, server).search("Bohemian Rhapsody", artist="Queen")

    record = results[0]
    assert record.type == "recording"
    assert record.id == RECORDING_ID
    assert record.title == "Bohemian Rhapsody"
    assert record.date == "1975-10-31"
    assert record.image == cover_art_url(RELEASE_ID)
    assert record["artist"] == "Queen"
    assert record["artist_mbid"] == QUEEN_ID
    assert record["album"] == "A Night at the Opera"
    assert record["duration"] == 354
    assert "releases" not in record.extra
    request = server.requests[0]
    assert request.headers["Accept"] == "application/json"
    assert request.url.params["query"] == 'recording:"Bohemian Rhapsody" AND artist:"Queen"'
    assert request.url.params["fmt"] == "json"
    assert request.url.params["limit"] == "25"


def test_album_search_uses_release_endpoint(make_client):
    server = MusicServer()

    results = _adapter(make_client, server).search("A Night at the Opera", media_type="album")

    assert results[0].type == "album"
    assert results[0]["track_count"] == 12
    assert results[0]["primary_type"] == "Album"
    assert server.requests[0].url.path == "/ws/2/release"
    assert server.requests[0].url.params["query"] == 'release:"A Night at the Opera"'


def test_unsupported_media_type_degrades(make_client):
    server = MusicServer()
    adapter = _adapter(make_client, server)

    assert adapter.search("Queen", media_type="movie") == []
    assert server.requests == []
    assert adapter.client.events.errors()


def test_search_artists(make_client):
    artists = _adapter(make_client, MusicServer()).search_artists("Queen")

    assert artists[0] == {"id": QUEEN_ID, "name": "Queen", "sort_name": "Queen", "type": "Group", "country": "GB", "score": 100}
    assert artists[1]["type"] == "Unknown"


def test_get_by_id_forms(make_client):
    server = MusicServer()
    adapter = _adapter(make_client, server)

    recording = adapter.get_by_id(RECORDING_ID)
    assert recording["releases"][0]["mbid"] == RELEASE_ID
    assert recording["isrcs"] == ["GBUM71029604"]

    release = adapter.get_by_id(f"release:{RELEASE_ID}")
    assert release.type == "album"
    assert release["barcode"] == "077778915228"
    assert release["tracks"][1] == {"disc": 1, "position": 11, "title": "Bohemian Rhapsody", "recording_mbid": RECORDING_ID, "duration": 354}

    assert adapter.get_by_id(f"album:{RELEASE_ID.upper()}").id == RELEASE_ID

    assert "inc=artists+releases+release-groups" in str(server.requests[0].url)
    assert server.requests[1].url.params["inc"] == "artists recordings release-groups"
    assert len(server.requests) == 2


def test_invalid_ids_degrade_without_requests(make_client):
    server = MusicServer()
    adapter = _adapter(make_client, server)

    assert adapter.get_by_id("not-an-mbid") is None
    assert adapter.get_by_id(f"artist:{QUEEN_ID}") is None
    assert server.requests == []
    assert len(adapter.client.events.errors()) == 2


def test_http_failures_degrade(make_client):
    adapter = _adapter(make_client, lambda request: httpx.Response(503, json={"error": "busy"}), max_retries=1)

    assert adapter.search("anything") == []

    missing = _adapter(make_client, MusicServer())
    assert missing.get_by_id("00000000-0000-0000-0000-000000000000") is None
    assert missing.client.events.errors()[-1].context["status_code"] == 404


def test_configured_without_credentials(make_client):
    server = MusicServer()
    adapter = _adapter(make_client, server)

    assert adapter.is_configured() is True
    assert adapter.verify().success is True
    assert server.requests[-1].url.path.startswith("/ws/2/artist/")


def test_normalize_tolerates_minimal_payloads(make_client):
    adapter = _adapter(make_client, MusicServer())

    recording = adapter.normalize_result({}, detailed=True)
    release = adapter.normalize_release({"media": [{"track-count": 3}]}, detailed=True)

    assert recording.type == "recording"
    assert recording.image == ""
    assert recording["duration"] is None
    assert recording["releases"] == []
    assert release.type == "album"
    assert release["track_count"] == 3
    assert release["tracks"] == []
