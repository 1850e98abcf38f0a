"""
MusicBrainz client and adapter.

No credentials are required, but MusicBrainz asks for one request per second
and a descriptive User-Agent. Searches use Lucene syntax; user input is
escaped with :func:`escape_lucene`. ``get_by_id`` takes a recording MBID, or
``release:<mbid>`` (``album:<mbid>`` also works) for a release.

Cover images come from the Cover Art Archive, which redirects release front
covers to the hosted image.

Reference: https://musicbrainz.org/doc/MusicBrainz_API
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..base import (
    AdapterError,
    NormalizedResult,
    OperationPolicy,
    ProviderAdapter,
    as_list,
    as_mapping,
    operation,
)
from .base import BaseAPIClient

DEFAULT_BASE_URL = "https://musicbrainz.org/ws/2/"
COVER_ART_URL = "https://coverartarchive.org/"
CONNECTION_CHECK_ARTIST = "5b11f4ce-a62d-471e-81fc-a69a8278c7da"
RECORDING_INCLUDES = "artists releases release-groups"
RELEASE_INCLUDES = "artists recordings release-groups"
_LUCENE_SPECIAL = re.compile(r'(&&|\|\||[+\-!(){}\[\]^"~*?:\\/])')
_MBID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


def escape_lucene(value: str) -> str:
    """Backslash-escape Lucene operators so ``value`` is matched literally."""

    return _LUCENE_SPECIAL.sub(lambda match: "".join("\\" + char for char in match.group(1)), value)


def lucene_query(field: str, value: str, *, artist: Optional[str] = None) -> str:
    query = f'{field}:"{escape_lucene(value)}"'
    if artist:
        query += f' AND artist:"{escape_lucene(artist)}"'
    return query


def cover_art_url(release_mbid: str, size: Optional[int] = 250) -> str:
    if not release_mbid:
        return ""
    suffix = f"front-{size}" if size else "front"
    return f"{COVER_ART_URL}release/{release_mbid}/{suffix}"


def artist_credit(credits: Any) -> Tuple[str, str]:
    """Return the display name and first artist MBID of an ``artist-credit`` list."""

    name = ""
    first_id = ""
    for credit in as_list(credits):
        credit = as_mapping(credit)
        artist = as_mapping(credit.get("artist"))
        name += (credit.get("name") or artist.get("name") or "") + (credit.get("joinphrase") or "")
        if not first_id:
            first_id = artist.get("id", "")
    return name.strip(), first_id


def _seconds(length: Any) -> Optional[int]:
    if isinstance(length, (int, float)) and length > 0:
        return int(length // 1000)
    return None


def _mbid(value: str) -> str:
    value = value.strip().lower()
    if not _MBID_PATTERN.match(value):
        raise AdapterError(f"Expected a MusicBrainz id, got {value!r}")
    return value


class MusicBrainzClient(BaseAPIClient):
    """Wrapper around the MusicBrainz JSON web service."""

    def default_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    def search_recordings(self, query: str, *, artist: Optional[str] = None, limit: int = 25) -> Dict[str, Any]:
        return self.cached_get("recording", {"query": lucene_query("recording", query, artist=artist), "fmt": "json", "limit": limit})

    def search_releases(self, query: str, *, artist: Optional[str] = None, limit: int = 25) -> Dict[str, Any]:
        return self.cached_get("release", {"query": lucene_query("release", query, artist=artist), "fmt": "json", "limit": limit})

    def search_artists(self, name: str, *, limit: int = 10) -> Dict[str, Any]:
        return self.cached_get("artist", {"query": lucene_query("artist", name), "fmt": "json", "limit": limit})

    def recording(self, mbid: str) -> Dict[str, Any]:
        return self.cached_get(f"recording/{mbid}", {"fmt": "json", "inc": RECORDING_INCLUDES})

    def release(self, mbid: str) -> Dict[str, Any]:
        return self.cached_get(f"release/{mbid}", {"fmt": "json", "inc": RELEASE_INCLUDES})


@dataclass(slots=True)
class MusicBrainzAdapter(ProviderAdapter):
    """Normalizes MusicBrainz recordings and releases."""

    client: MusicBrainzClient

    source_id = "musicbrainz"
    docs_url = "https://musicbrainz.org/doc/MusicBrainz_API"
    default_type = "recording"

    def test_connection(self) -> bool:
        self.client.get(f"artist/{CONNECTION_CHECK_ARTIST}", {"fmt": "json"})
        return True

    @operation(OperationPolicy.DEGRADE_TO_EMPTY, default=list)
    def search(self, query: str, **filters: Any) -> List[NormalizedResult]:
        media_type = filters.get("media_type") or self.default_type
        artist = filters.get("artist")
        if media_type in {"album", "release"}:
            payload = as_mapping(self.client.search_releases(query, artist=artist))
            return [self.normalize_release(item) for item in as_list(payload.get("releases")) if isinstance(item, Mapping)]
        if media_type != "recording":
            raise AdapterError(f"Unsupported MusicBrainz media type: {media_type}")
        payload = as_mapping(self.client.search_recordings(query, artist=artist))
        return [self.normalize_result(item) for item in as_list(payload.get("recordings")) if isinstance(item, Mapping)]

    @operation(OperationPolicy.DEGRADE_TO_EMPTY, default=list)
    def search_artists(self, name: str) -> List[Dict[str, Any]]:
        payload = as_mapping(self.client.search_artists(name))
        return [
            {
                "id": artist.get("id", ""),
                "name": artist.get("name", ""),
                "sort_name": artist.get("sort-name", ""),
                "type": artist.get("type") or "Unknown",
                "country": artist.get("country", ""),
                "score": artist.get("score", 0),
            }
            for artist in (as_mapping(item) for item in as_list(payload.get("artists")))
        ]

    @operation(OperationPolicy.DEGRADE_TO_EMPTY)
    def get_by_id(self, item_id: str) -> Optional[NormalizedResult]:
        kind, _, value = item_id.partition(":") if ":" in item_id else ("recording", "", item_id)
        if kind in {"release", "album"}:
            return self.normalize_release(as_mapping(self.client.release(_mbid(value))), detailed=True)
        if kind == "recording":
            return self.normalize_result(as_mapping(self.client.recording(_mbid(value))), detailed=True)
        raise AdapterError(f"Unsupported MusicBrainz id prefix: {kind}")

    def normalize_result(self, raw: Mapping[str, Any], *, detailed: bool = False) -> NormalizedResult:
        raw = as_mapping(raw)
        artist, artist_mbid = artist_credit(raw.get("artist-credit"))
        releases = [as_mapping(item) for item in as_list(raw.get("releases"))]
        first = releases[0] if releases else {}
        extra: Dict[str, Any] = {}
        if detailed:
            extra["releases"] = [_release_summary(item) for item in releases]
            extra["isrcs"] = as_list(raw.get("isrcs"))
        return self._result(
            raw.get("id", ""),
            media_type="recording",
            title=raw.get("title", ""),
            date=raw.get("first-release-date") or first.get("date", ""),
            image=cover_art_url(first.get("id", "")),
            description=raw.get("disambiguation", ""),
            mbid=raw.get("id", ""),
            artist=artist,
            artist_mbid=artist_mbid,
            album=first.get("title", ""),
            album_mbid=first.get("id", ""),
            duration=_seconds(raw.get("length")),
            score=raw.get("score", 0),
            **extra,
        )

    def normalize_release(self, raw: Mapping[str, Any], *, detailed: bool = False) -> NormalizedResult:
        raw = as_mapping(raw)
        artist, artist_mbid = artist_credit(raw.get("artist-credit"))
        release_group = as_mapping(raw.get("release-group"))
        extra: Dict[str, Any] = {}
        if detailed:
            extra["tracks"] = _tracks(as_list(raw.get("media")))
            extra["barcode"] = raw.get("barcode") or ""
        return self._result(
            raw.get("id", ""),
            media_type="album",
            title=raw.get("title", ""),
            date=raw.get("date", ""),
            image=cover_art_url(raw.get("id", "")),
            description=raw.get("disambiguation", ""),
            mbid=raw.get("id", ""),
            artist=artist,
            artist_mbid=artist_mbid,
            country=raw.get("country", ""),
            status=raw.get("status", ""),
            release_group_mbid=release_group.get("id", ""),
            primary_type=release_group.get("primary-type", ""),
            track_count=raw.get("track-count") or sum(as_mapping(medium).get("track-count", 0) for medium in as_list(raw.get("media"))),
            score=raw.get("score", 0),
            **extra,
        )


def _release_summary(release: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "mbid": release.get("id", ""),
        "title": release.get("title", ""),
        "date": release.get("date", ""),
        "country": release.get("country", ""),
    }


def _tracks(media: Sequence[Any]) -> List[Dict[str, Any]]:
    tracks = []
    for disc, medium in enumerate((as_mapping(item) for item in media), start=1):
        for track in as_list(medium.get("tracks")):
            track = as_mapping(track)
            recording = as_mapping(track.get("recording"))
            tracks.append(
                {
                    "disc": medium.get("position", disc),
                    "position": track.get("position"),
                    "title": track.get("title") or recording.get("title", ""),
                    "recording_mbid": recording.get("id", ""),
                    "duration": _seconds(track.get("length")),
                }
            )
    return tracks
