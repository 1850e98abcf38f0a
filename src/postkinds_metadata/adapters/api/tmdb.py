"""
The Movie Database (TMDB) client and adapter.

Reference: https://developer.themoviedb.org/docs
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ..base import (
    AdapterError,
    NormalizedResult,
    OperationPolicy,
    ProviderAdapter,
    as_list,
    as_mapping,
    operation,
    year_of,
)
from .base import BaseAPIClient, ProviderConfig

DEFAULT_BASE_URL = "https://api.themoviedb.org/3/"
IMAGE_BASE_URL = "https://image.tmdb.org/t/p/"
DEFAULT_LANGUAGE = "en-US"
_DETAIL_APPEND = "credits,external_ids,videos,watch/providers"
_PRIORITY_JOBS = (
    "Director",
    "Writer",
    "Screenplay",
    "Producer",
    "Executive Producer",
    "Composer",
    "Director of Photography",
)
_SEARCH_TYPES = {"movie", "tv", "person"}


def image_url(path: Optional[str], size: str = "w342") -> str:
    if not path:
        return ""
    return f"{IMAGE_BASE_URL}{size}{path}"


class TMDBClient(BaseAPIClient):
    """TMDB v3 client. Authenticates with a bearer token or an ``api_key`` query parameter."""

    def __init__(self, config: ProviderConfig, *, language: Optional[str] = None, **options: Any) -> None:
        super().__init__(config, **options)
        self.access_token = config.credential("access_token")
        self.api_key = config.credential("api_key")
        self.language = language or config.credential("language") or DEFAULT_LANGUAGE

    def default_headers(self) -> Dict[str, str]:
        if self.access_token:
            return {"Authorization": f"Bearer {self.access_token}"}
        return {}

    def build_url(self, endpoint: str, params: Optional[Mapping[str, Any]] = None) -> str:
        merged: Dict[str, Any] = dict(params or {})
        if not self.access_token and self.api_key:
            merged["api_key"] = self.api_key
        merged.setdefault("language", self.language)
        return super().build_url(endpoint, merged)

    def search(self, query: str, *, media_type: Optional[str] = None, year: Optional[int] = None, page: int = 1) -> Dict[str, Any]:
        endpoint = f"search/{media_type}" if media_type else "search/multi"
        params: Dict[str, Any] = {"query": query, "page": page}
        if year:
            if media_type == "movie":
                params["year"] = year
            elif media_type == "tv":
                params["first_air_date_year"] = year
        return self.cached_get(endpoint, params)

    def movie(self, movie_id: int) -> Dict[str, Any]:
        return self.cached_get(f"movie/{movie_id}", {"append_to_response": _DETAIL_APPEND})

    def tv(self, tv_id: int) -> Dict[str, Any]:
        return self.cached_get(f"tv/{tv_id}", {"append_to_response": _DETAIL_APPEND})

    def season(self, tv_id: int, season_number: int) -> Dict[str, Any]:
        return self.cached_get(f"tv/{tv_id}/season/{season_number}")

    def episode(self, tv_id: int, season_number: int, episode_number: int) -> Dict[str, Any]:
        return self.cached_get(
            f"tv/{tv_id}/season/{season_number}/episode/{episode_number}",
            {"append_to_response": "credits"},
        )

    def trending(self, media_type: str = "all", window: str = "week") -> Dict[str, Any]:
        return self.cached_get(f"trending/{media_type}/{window}")

    def configuration(self) -> Dict[str, Any]:
        return self.get("configuration")


@dataclass(slots=True)
class TMDBAdapter(ProviderAdapter):
    """Normalizes TMDB movies, shows, people and episodes."""

    client: TMDBClient

    source_id = "tmdb"
    docs_url = "https://developer.themoviedb.org/docs"
    default_type = "movie"

    def is_configured(self) -> bool:
        return bool(self.client.access_token or self.client.api_key)

    def test_connection(self) -> bool:
        self.require_configured()
        self.client.configuration()
        return True

    @operation(OperationPolicy.DEGRADE_TO_EMPTY, default=list)
    def search(self, query: str, **filters: Any) -> List[NormalizedResult]:
        self.require_configured()
        media_type = filters.get("media_type") or filters.get("type")
        if media_type and media_type not in _SEARCH_TYPES:
            raise AdapterError(f"Unsupported TMDB search type: {media_type}")
        payload = self.client.search(query, media_type=media_type, year=filters.get("year"))
        results: List[NormalizedResult] = []
        for item in as_list(as_mapping(payload).get("results")):
            if not isinstance(item, Mapping):
                continue
            item_type = item.get("media_type") or media_type or "movie"
            if item_type not in _SEARCH_TYPES:
                continue
            results.append(self.normalize_result({**item, "media_type": item_type}))
        return results

    @operation(OperationPolicy.DEGRADE_TO_EMPTY)
    def get_by_id(self, item_id: str) -> Optional[NormalizedResult]:
        """Accepts ``movie:123``, ``tv:456`` or a bare movie id."""

        self.require_configured()
        kind, _, raw_id = item_id.partition(":") if ":" in item_id else ("movie", "", item_id)
        try:
            numeric = int(raw_id)
        except ValueError as exc:
            raise AdapterError(f"Invalid TMDB id: {item_id}") from exc
        if kind == "tv":
            return self._detailed(self.client.tv(numeric), "tv")
        if kind == "movie":
            return self._detailed(self.client.movie(numeric), "movie")
        raise AdapterError(f"Unsupported TMDB id prefix: {kind}")

    @operation(OperationPolicy.DEGRADE_TO_EMPTY)
    def get_season(self, tv_id: int, season_number: int) -> Optional[NormalizedResult]:
        payload = as_mapping(self.client.season(tv_id, season_number))
        episodes = [self._episode(item, tv_id) for item in as_list(payload.get("episodes")) if isinstance(item, Mapping)]
        return self._result(
            payload.get("id"),
            media_type="season",
            title=payload.get("name", ""),
            date=payload.get("air_date", ""),
            image=image_url(payload.get("poster_path")),
            description=payload.get("overview", ""),
            season_number=payload.get("season_number", season_number),
            episode_count=len(episodes),
            episodes=[episode.to_dict() for episode in episodes],
        )

    @operation(OperationPolicy.DEGRADE_TO_EMPTY)
    def get_episode(self, tv_id: int, season_number: int, episode_number: int) -> Optional[NormalizedResult]:
        payload = as_mapping(self.client.episode(tv_id, season_number, episode_number))
        result = self._episode(payload, tv_id)
        credits = as_mapping(payload.get("credits"))
        if credits:
            result.extra["guest_stars"] = _cast(credits.get("guest_stars"))
            result.extra["crew"] = _crew(credits.get("crew"))
        return result

    @operation(OperationPolicy.DEGRADE_TO_EMPTY, default=list)
    def trending(self, media_type: str = "all", window: str = "week") -> List[NormalizedResult]:
        payload = as_mapping(self.client.trending(media_type, window))
        return [
            self.normalize_result(item)
            for item in as_list(payload.get("results"))
            if isinstance(item, Mapping) and (item.get("media_type") or "movie") in _SEARCH_TYPES
        ]

    def normalize_result(self, raw: Mapping[str, Any], *, detailed: bool = False) -> NormalizedResult:
        raw = as_mapping(raw)
        media_type = raw.get("media_type") or "movie"
        if media_type == "tv":
            return self._show(raw, detailed)
        if media_type == "person":
            return self._person(raw)
        if media_type == "episode":
            return self._episode(raw, raw.get("show_id") or 0)
        return self._movie(raw, detailed)

    def _detailed(self, payload: Mapping[str, Any], media_type: str) -> NormalizedResult:
        payload = as_mapping(payload)
        result = self._show(payload, True) if media_type == "tv" else self._movie(payload, True)
        extra = result.extra
        credits = as_mapping(payload.get("credits"))
        if credits:
            extra["cast"] = _cast(credits.get("cast"))
            extra["crew"] = _crew(credits.get("crew"))
            if media_type == "movie":
                extra["director"] = _director(credits.get("crew"))
        if media_type == "tv" and "created_by" in payload:
            extra["creators"] = [
                {"id": item.get("id"), "name": item.get("name", ""), "image": image_url(item.get("profile_path"), "w185")}
                for item in as_list(payload.get("created_by"))
                if isinstance(item, Mapping)
            ]
        external = as_mapping(payload.get("external_ids"))
        if external:
            extra["imdb_id"] = external.get("imdb_id") or ""
            extra["wikidata"] = external.get("wikidata_id") or ""
            if media_type == "tv":
                extra["tvdb_id"] = external.get("tvdb_id") or ""
        videos = as_mapping(payload.get("videos"))
        if "results" in videos:
            extra["trailer"] = _trailer(videos.get("results"))
        providers = as_mapping(payload.get("watch/providers"))
        if "results" in providers:
            extra["watch_providers"] = providers.get("results")
        return result

    def _movie(self, raw: Mapping[str, Any], detailed: bool) -> NormalizedResult:
        release_date = raw.get("release_date") or ""
        extra: Dict[str, Any] = {
            "tmdb_id": raw.get("id") or 0,
            "original_title": raw.get("original_title", ""),
            "backdrop": image_url(raw.get("backdrop_path"), "w1280"),
            "year": year_of(release_date),
            "vote_average": raw.get("vote_average") or 0,
            "vote_count": raw.get("vote_count") or 0,
            "popularity": raw.get("popularity") or 0,
        }
        if detailed:
            extra.update(
                runtime=raw.get("runtime"),
                tagline=raw.get("tagline", ""),
                status=raw.get("status", ""),
                budget=raw.get("budget") or 0,
                revenue=raw.get("revenue") or 0,
                homepage=raw.get("homepage", ""),
                genres=_names(raw.get("genres")),
                production_companies=_companies(raw.get("production_companies")),
                spoken_languages=[
                    item.get("english_name") or item.get("name", "")
                    for item in as_list(raw.get("spoken_languages"))
                    if isinstance(item, Mapping)
                ],
            )
        else:
            extra["genre_ids"] = as_list(raw.get("genre_ids"))
        return self._result(
            raw.get("id"),
            media_type="movie",
            title=raw.get("title", ""),
            date=release_date,
            image=image_url(raw.get("poster_path")),
            description=raw.get("overview", ""),
            **extra,
        )

    def _show(self, raw: Mapping[str, Any], detailed: bool) -> NormalizedResult:
        first_air_date = raw.get("first_air_date") or ""
        extra: Dict[str, Any] = {
            "tmdb_id": raw.get("id") or 0,
            "original_title": raw.get("original_name", ""),
            "backdrop": image_url(raw.get("backdrop_path"), "w1280"),
            "year": year_of(first_air_date),
            "vote_average": raw.get("vote_average") or 0,
            "vote_count": raw.get("vote_count") or 0,
            "popularity": raw.get("popularity") or 0,
        }
        if detailed:
            show_id = raw.get("id") or 0
            extra.update(
                last_air_date=raw.get("last_air_date", ""),
                tagline=raw.get("tagline", ""),
                status=raw.get("status", ""),
                homepage=raw.get("homepage", ""),
                in_production=bool(raw.get("in_production", False)),
                number_of_seasons=raw.get("number_of_seasons") or 0,
                number_of_episodes=raw.get("number_of_episodes") or 0,
                episode_run_time=as_list(raw.get("episode_run_time")),
                genres=_names(raw.get("genres")),
                networks=_companies(raw.get("networks")),
                seasons=[
                    {
                        "id": season.get("id") or 0,
                        "name": season.get("name", ""),
                        "season_number": season.get("season_number") or 0,
                        "episode_count": season.get("episode_count") or 0,
                        "air_date": season.get("air_date", ""),
                        "poster": image_url(season.get("poster_path"), "w185"),
                    }
                    for season in as_list(raw.get("seasons"))
                    if isinstance(season, Mapping)
                ],
            )
            for key, source_key in (("last_episode", "last_episode_to_air"), ("next_episode", "next_episode_to_air")):
                episode = raw.get(source_key)
                if isinstance(episode, Mapping):
                    extra[key] = self._episode(episode, show_id).to_dict()
        else:
            extra["genre_ids"] = as_list(raw.get("genre_ids"))
        return self._result(
            raw.get("id"),
            media_type="tv",
            title=raw.get("name", ""),
            date=first_air_date,
            image=image_url(raw.get("poster_path")),
            description=raw.get("overview", ""),
            **extra,
        )

    def _person(self, raw: Mapping[str, Any]) -> NormalizedResult:
        return self._result(
            raw.get("id"),
            media_type="person",
            title=raw.get("name", ""),
            image=image_url(raw.get("profile_path"), "w185"),
            known_for_department=raw.get("known_for_department", ""),
            popularity=raw.get("popularity") or 0,
        )

    def _episode(self, raw: Mapping[str, Any], tv_id: Any) -> NormalizedResult:
        return self._result(
            raw.get("id"),
            media_type="episode",
            title=raw.get("name", ""),
            date=raw.get("air_date", ""),
            image=image_url(raw.get("still_path"), "w300"),
            description=raw.get("overview", ""),
            tv_id=tv_id,
            episode_number=raw.get("episode_number") or 0,
            season_number=raw.get("season_number") or 0,
            runtime=raw.get("runtime"),
            vote_average=raw.get("vote_average") or 0,
            vote_count=raw.get("vote_count") or 0,
        )


def _names(items: Any) -> List[str]:
    return [item.get("name", "") for item in as_list(items) if isinstance(item, Mapping)]


def _companies(items: Any) -> List[Dict[str, Any]]:
    return [
        {"id": item.get("id"), "name": item.get("name", ""), "logo": image_url(item.get("logo_path"), "w92")}
        for item in as_list(items)
        if isinstance(item, Mapping)
    ]


def _cast(items: Any, limit: int = 15) -> List[Dict[str, Any]]:
    return [
        {
            "id": member.get("id") or 0,
            "name": member.get("name", ""),
            "character": member.get("character", ""),
            "image": image_url(member.get("profile_path"), "w185"),
            "order": member.get("order") or 0,
        }
        for member in as_list(items)[:limit]
        if isinstance(member, Mapping)
    ]


def _crew(items: Any, limit: int = 20) -> List[Dict[str, Any]]:
    def priority(member: Mapping[str, Any]) -> int:
        job = member.get("job", "")
        return _PRIORITY_JOBS.index(job) if job in _PRIORITY_JOBS else len(_PRIORITY_JOBS)

    members = sorted((member for member in as_list(items) if isinstance(member, Mapping)), key=priority)
    seen: set[tuple[Any, str]] = set()
    result: List[Dict[str, Any]] = []
    for member in members:
        key = (member.get("id") or 0, member.get("job", ""))
        if key in seen:
            continue
        seen.add(key)
        if len(result) >= limit:
            break
        result.append(
            {
                "id": key[0],
                "name": member.get("name", ""),
                "job": key[1],
                "department": member.get("department", ""),
                "image": image_url(member.get("profile_path"), "w185"),
            }
        )
    return result


def _director(items: Any) -> Optional[str]:
    for member in as_list(items):
        if isinstance(member, Mapping) and member.get("job") == "Director":
            return member.get("name")
    return None


def _trailer(videos: Any) -> Optional[Dict[str, str]]:
    candidates = [
        video
        for video in as_list(videos)
        if isinstance(video, Mapping) and video.get("type") == "Trailer" and video.get("site") == "YouTube" and video.get("key")
    ]
    preferred = [video for video in candidates if video.get("official")] or candidates
    if not preferred:
        return None
    video = preferred[0]
    return {"key": video["key"], "name": video.get("name", ""), "url": f"https://www.youtube.com/watch?v={video['key']}"}
