"""
Trakt client and adapter.

Search and lookups only need the application's client id. Watch history and
the watchlist are per-user and need an OAuth access token; the client exposes
the token-exchange shape (authorization URL, code exchange, refresh) but does
not run a consent flow.

Reference: https://trakt.docs.apiary.io/
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlencode

from ..base import (
    AdapterError,
    NormalizedResult,
    OperationPolicy,
    ProviderAdapter,
    as_list,
    as_mapping,
    operation,
)
from .base import BaseAPIClient, ProviderConfig

DEFAULT_BASE_URL = "https://api.trakt.tv/"
AUTHORIZE_URL = "https://trakt.tv/oauth/authorize"
DEFAULT_TOKEN_LIFETIME = 7776000
USER_LIST_TTL = 300
_PLURAL = {"movie": "movies", "show": "shows", "episode": "episodes"}


@dataclass(slots=True)
class TokenGrant:
    """Tokens returned by the ``oauth/token`` endpoint."""

    access_token: str
    refresh_token: str = ""
    expires_in: int = DEFAULT_TOKEN_LIFETIME
    created_at: int = 0

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, fallback_refresh: str = "") -> "TokenGrant":
        return cls(
            access_token=str(payload["access_token"]),
            refresh_token=str(payload.get("refresh_token") or fallback_refresh),
            expires_in=int(payload.get("expires_in") or DEFAULT_TOKEN_LIFETIME),
            created_at=int(payload.get("created_at") or time.time()),
        )


class TraktClient(BaseAPIClient):
    """Trakt API v2 client."""

    def __init__(self, config: ProviderConfig, **options: Any) -> None:
        super().__init__(config, **options)
        self.client_id = config.credential("client_id", "")
        self.client_secret = config.credential("client_secret", "")
        self.access_token = config.credential("access_token", "")
        self.refresh_token = config.credential("refresh_token", "")

    def default_headers(self) -> Dict[str, str]:
        headers = {"trakt-api-version": "2", "trakt-api-key": self.client_id or ""}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    # OAuth token shape ------------------------------------------------------

    def authorization_url(self, redirect_uri: str, state: str = "") -> str:
        params = {"response_type": "code", "client_id": self.client_id, "redirect_uri": redirect_uri}
        if state:
            params["state"] = state
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def exchange_code(self, code: str, redirect_uri: str) -> TokenGrant:
        payload = self.post(
            "oauth/token",
            {
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        return self._store_grant(payload)

    def refresh_access_token(self) -> TokenGrant:
        if not self.refresh_token:
            raise AdapterError("Trakt refresh token is not configured.")
        payload = self.post(
            "oauth/token",
            {
                "refresh_token": self.refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
            },
        )
        return self._store_grant(payload)

    def _store_grant(self, payload: Any) -> TokenGrant:
        if not isinstance(payload, Mapping) or not payload.get("access_token"):
            raise AdapterError("Trakt token endpoint returned no access token.")
        grant = TokenGrant.from_payload(payload, fallback_refresh=self.refresh_token)
        self.access_token = grant.access_token
        self.refresh_token = grant.refresh_token
        return grant

    # Catalogue ----------------------------------------------------------------

    def search(self, query: str, *, media_type: Optional[str] = None, limit: int = 25) -> List[Any]:
        return as_list(self.cached_get(f"search/{media_type or 'movie,show'}", {"query": query, "limit": limit}))

    def movie(self, trakt_id: str) -> Dict[str, Any]:
        return self.cached_get(f"movies/{trakt_id}", {"extended": "full"})

    def show(self, trakt_id: str) -> Dict[str, Any]:
        return self.cached_get(f"shows/{trakt_id}", {"extended": "full"})

    def trending(self, media_type: str = "movies", limit: int = 10) -> List[Any]:
        return as_list(self.cached_get(f"{media_type}/trending", {"limit": limit}))

    # User lists ---------------------------------------------------------------

    def history(
        self,
        media_type: str = "all",
        *,
        page: int = 1,
        limit: int = 25,
        start_at: str = "",
        end_at: str = "",
    ) -> List[Any]:
        """
        Watch history, newest first. The default first page (25 items, no date
        range) is cached briefly and dropped whenever history is modified
        through this client.
        """

        endpoint = "users/me/history" if media_type == "all" else f"users/me/history/{media_type}"
        params: Dict[str, Any] = {"page": page, "limit": min(limit, 100)}
        if start_at:
            params["start_at"] = start_at
        if end_at:
            params["end_at"] = end_at
        cacheable = page == 1 and limit == 25 and not start_at and not end_at
        key = f"history_{media_type}"
        if cacheable:
            cached = self.get_cache(key)
            if cached is not None:
                return cached
        items = as_list(self.get(endpoint, params))
        if cacheable:
            self.set_cache(key, items, USER_LIST_TTL)
        return items

    def watchlist(self, media_type: str = "all") -> List[Any]:
        key = f"watchlist_{media_type}"
        cached = self.get_cache(key)
        if cached is not None:
            return cached
        endpoint = "users/me/watchlist" if media_type == "all" else f"users/me/watchlist/{media_type}"
        items = as_list(self.get(endpoint, {"extended": "full"}))
        self.set_cache(key, items, USER_LIST_TTL)
        return items

    def add_to_history(self, item_type: str, ids: Mapping[str, Any], watched_at: Optional[str] = None) -> Dict[str, Any]:
        plural = _plural(item_type)
        entry = {"ids": dict(ids), "watched_at": watched_at or datetime.now(UTC).isoformat(timespec="seconds")}
        response = self.post("sync/history", {plural: [entry]})
        self._invalidate_user_lists(plural)
        return response

    def remove_from_history(self, item_type: str, ids: Mapping[str, Any]) -> Dict[str, Any]:
        plural = _plural(item_type)
        response = self.post("sync/history/remove", {plural: [{"ids": dict(ids)}]})
        self._invalidate_user_lists(plural)
        return response

    def add_to_watchlist(self, item_type: str, ids: Mapping[str, Any]) -> Dict[str, Any]:
        plural = _plural(item_type)
        response = self.post("sync/watchlist", {plural: [{"ids": dict(ids)}]})
        for key in (f"watchlist_{plural}", "watchlist_all"):
            self.delete_cache(key)
        return response

    def _invalidate_user_lists(self, plural: str) -> None:
        for media_type in (plural, "all"):
            self.delete_cache(f"history_{media_type}")
            self.delete_cache(f"watchlist_{media_type}")


def _plural(item_type: str) -> str:
    try:
        return _PLURAL[item_type]
    except KeyError as exc:
        raise AdapterError(f"Unsupported Trakt item type: {item_type}") from exc


@dataclass(slots=True)
class TraktAdapter(ProviderAdapter):
    """Normalizes Trakt movies, shows, episodes and user list entries."""

    client: TraktClient

    source_id = "trakt"
    docs_url = "https://trakt.docs.apiary.io/"
    default_type = "movie"

    def is_configured(self) -> bool:
        return bool(self.client.client_id)

    def is_authenticated(self) -> bool:
        return self.is_configured() and bool(self.client.access_token)

    def test_connection(self) -> bool:
        self.require_configured()
        if self.is_authenticated():
            self.client.get("users/settings")
        else:
            self.client.get("movies/trending", {"limit": 1})
        return True

    @operation(OperationPolicy.DEGRADE_TO_EMPTY, default=list)
    def search(self, query: str, **filters: Any) -> List[NormalizedResult]:
        media_type = filters.get("media_type") or filters.get("type")
        if media_type == "tv":
            media_type = "show"
        items = self.client.search(query, media_type=media_type)
        return [self.normalize_result(item) for item in items if isinstance(item, Mapping)]

    @operation(OperationPolicy.DEGRADE_TO_EMPTY)
    def get_by_id(self, item_id: str) -> Optional[NormalizedResult]:
        """Accepts ``movie:<id or slug>`` or ``show:<id or slug>``."""

        kind, _, trakt_id = item_id.partition(":")
        if not trakt_id:
            raise AdapterError(f"Trakt ids need a type prefix: {item_id}")
        if kind == "movie":
            return self._movie(as_mapping(self.client.movie(trakt_id)))
        if kind in {"show", "tv"}:
            return self._show(as_mapping(self.client.show(trakt_id)))
        raise AdapterError(f"Unsupported Trakt id prefix: {kind}")

    @operation(OperationPolicy.DEGRADE_TO_EMPTY, default=list)
    def history(self, media_type: str = "all", *, page: int = 1, limit: int = 25) -> List[NormalizedResult]:
        if not self.is_authenticated():
            raise AdapterError("Trakt history requires an access token.")
        results = []
        for item in self.client.history(media_type, page=page, limit=limit):
            if not isinstance(item, Mapping):
                continue
            result = self.normalize_result(item)
            result.extra.update(
                history_id=item.get("id") or 0,
                watched_at=item.get("watched_at", ""),
                action=item.get("action") or "watch",
            )
            results.append(result)
        return results

    @operation(OperationPolicy.DEGRADE_TO_EMPTY, default=list)
    def watchlist(self, media_type: str = "all") -> List[NormalizedResult]:
        if not self.is_authenticated():
            raise AdapterError("Trakt watchlist requires an access token.")
        results = []
        for item in self.client.watchlist(media_type):
            if not isinstance(item, Mapping):
                continue
            result = self.normalize_result(item)
            result.extra["listed_at"] = item.get("listed_at", "")
            results.append(result)
        return results

    @operation(OperationPolicy.PROPAGATE)
    def add_to_history(self, item_type: str, ids: Mapping[str, Any], watched_at: Optional[str] = None) -> bool:
        if not self.is_authenticated():
            raise AdapterError("Trakt history requires an access token.")
        self.client.add_to_history(item_type, ids, watched_at)
        return True

    @operation(OperationPolicy.PROPAGATE)
    def add_to_watchlist(self, item_type: str, ids: Mapping[str, Any]) -> bool:
        if not self.is_authenticated():
            raise AdapterError("Trakt watchlist requires an access token.")
        self.client.add_to_watchlist(item_type, ids)
        return True

    def normalize_result(self, raw: Mapping[str, Any], *, detailed: bool = False) -> NormalizedResult:
        raw = as_mapping(raw)
        kind = raw.get("type")
        if kind == "show" and isinstance(raw.get("show"), Mapping):
            return self._show(raw["show"])
        if kind == "episode" and isinstance(raw.get("episode"), Mapping):
            result = self._episode(raw["episode"])
            if isinstance(raw.get("show"), Mapping):
                result.extra["show"] = self._show(raw["show"]).to_dict()
            return result
        if kind == "movie" and isinstance(raw.get("movie"), Mapping):
            return self._movie(raw["movie"])
        for key, builder in (("movie", self._movie), ("show", self._show), ("episode", self._episode)):
            if isinstance(raw.get(key), Mapping):
                return builder(raw[key])
        return self._movie(raw)

    def _ids(self, raw: Mapping[str, Any]) -> Dict[str, Any]:
        ids = as_mapping(raw.get("ids"))
        return {
            "trakt_id": ids.get("trakt") or 0,
            "tmdb_id": ids.get("tmdb"),
            "imdb_id": ids.get("imdb") or "",
            "slug": ids.get("slug") or "",
        }

    def _movie(self, raw: Mapping[str, Any]) -> NormalizedResult:
        ids = self._ids(raw)
        return self._result(
            ids["trakt_id"] or "",
            media_type="movie",
            title=raw.get("title", ""),
            date=raw.get("released", ""),
            description=raw.get("overview", ""),
            **ids,
            year=raw.get("year"),
            runtime=raw.get("runtime"),
            tagline=raw.get("tagline", ""),
            certification=raw.get("certification", ""),
            trailer=raw.get("trailer") or "",
            homepage=raw.get("homepage") or "",
            rating=raw.get("rating") or 0,
            votes=raw.get("votes") or 0,
            genres=as_list(raw.get("genres")),
            language=raw.get("language") or "",
            country=raw.get("country") or "",
        )

    def _show(self, raw: Mapping[str, Any]) -> NormalizedResult:
        ids = self._ids(raw)
        ids["tvdb_id"] = as_mapping(raw.get("ids")).get("tvdb")
        return self._result(
            ids["trakt_id"] or "",
            media_type="tv",
            title=raw.get("title", ""),
            date=raw.get("first_aired", ""),
            description=raw.get("overview", ""),
            **ids,
            year=raw.get("year"),
            runtime=raw.get("runtime"),
            certification=raw.get("certification", ""),
            network=raw.get("network") or "",
            trailer=raw.get("trailer") or "",
            homepage=raw.get("homepage") or "",
            status=raw.get("status") or "",
            rating=raw.get("rating") or 0,
            votes=raw.get("votes") or 0,
            aired_episodes=raw.get("aired_episodes") or 0,
            genres=as_list(raw.get("genres")),
            language=raw.get("language") or "",
            country=raw.get("country") or "",
        )

    def _episode(self, raw: Mapping[str, Any]) -> NormalizedResult:
        ids = self._ids(raw)
        ids["tvdb_id"] = as_mapping(raw.get("ids")).get("tvdb")
        return self._result(
            ids["trakt_id"] or "",
            media_type="episode",
            title=raw.get("title", ""),
            date=raw.get("first_aired", ""),
            description=raw.get("overview", ""),
            **ids,
            season=raw.get("season") or 0,
            number=raw.get("number") or 0,
            runtime=raw.get("runtime"),
            rating=raw.get("rating") or 0,
            votes=raw.get("votes") or 0,
        )
