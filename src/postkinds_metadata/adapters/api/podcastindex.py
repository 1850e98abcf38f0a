"""
Podcast Index client and adapter.

Every request is signed: ``Authorization`` carries the SHA-1 hex digest of
``api_key + api_secret + epoch`` and ``X-Auth-Date`` carries the epoch used.

Reference: https://podcastindex-org.github.io/docs-api/
"""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

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

DEFAULT_BASE_URL = "https://api.podcastindex.org/api/1.0/"


def auth_headers(api_key: str, api_secret: str, epoch: int) -> Dict[str, str]:
    digest = hashlib.sha1(f"{api_key}{api_secret}{epoch}".encode("utf-8")).hexdigest()
    return {"X-Auth-Date": str(epoch), "X-Auth-Key": api_key, "Authorization": digest}


def _timestamp(value: Any) -> str:
    if not isinstance(value, (int, float)) or value <= 0:
        return ""
    return datetime.fromtimestamp(value, UTC).isoformat()


class PodcastIndexClient(BaseAPIClient):
    """Signed Podcast Index client."""

    def __init__(self, config: ProviderConfig, *, epoch: Callable[[], float] = time.time, **options: Any) -> None:
        super().__init__(config, **options)
        self.api_key = config.credential("api_key", "")
        self.api_secret = config.credential("api_secret", "")
        self.epoch = epoch

    def default_headers(self) -> Dict[str, str]:
        return auth_headers(self.api_key or "", self.api_secret or "", int(self.epoch()))

    def search(self, query: str, *, max_results: int = 25) -> Dict[str, Any]:
        return self.cached_get("search/byterm", {"q": query, "max": max_results})

    def search_by_person(self, person: str, *, max_results: int = 25) -> Dict[str, Any]:
        return self.cached_get("search/byperson", {"q": person, "max": max_results})

    def podcast(self, feed_id: int) -> Dict[str, Any]:
        return self.cached_get("podcasts/byfeedid", {"id": feed_id})

    def podcast_by_itunes_id(self, itunes_id: int) -> Dict[str, Any]:
        return self.cached_get("podcasts/byitunesid", {"id": itunes_id})

    def podcast_by_feed_url(self, url: str) -> Dict[str, Any]:
        return self.cached_get("podcasts/byfeedurl", {"url": url})

    def podcast_by_guid(self, guid: str) -> Dict[str, Any]:
        return self.cached_get("podcasts/byguid", {"guid": guid})

    def episodes(self, feed_id: int, *, max_results: int = 25) -> Dict[str, Any]:
        return self.cached_get("episodes/byfeedid", {"id": feed_id, "max": min(max_results, 1000)})

    def episode(self, episode_id: int) -> Dict[str, Any]:
        return self.cached_get("episodes/byid", {"id": episode_id})

    def trending(self, *, max_results: int = 25, lang: str = "", category: str = "") -> Dict[str, Any]:
        params: Dict[str, Any] = {"max": max_results}
        if lang:
            params["lang"] = lang
        if category:
            params["cat"] = category
        return self.cached_get("podcasts/trending", params, ttl=3600)


@dataclass(slots=True)
class PodcastIndexAdapter(ProviderAdapter):
    """Normalizes Podcast Index feeds and episodes."""

    client: PodcastIndexClient

    source_id = "podcastindex"
    docs_url = "https://podcastindex-org.github.io/docs-api/"
    default_type = "podcast"

    def is_configured(self) -> bool:
        return bool(self.client.api_key and self.client.api_secret)

    def test_connection(self) -> bool:
        self.require_configured()
        self.client.get("search/byterm", {"q": "test", "max": 1})
        return True

    @operation(OperationPolicy.DEGRADE_TO_EMPTY, default=list)
    def search(self, query: str, **filters: Any) -> List[NormalizedResult]:
        self.require_configured()
        if filters.get("person"):
            payload = self.client.search_by_person(filters["person"])
            return [self.normalize_episode(item) for item in as_list(as_mapping(payload).get("items")) if isinstance(item, Mapping)]
        payload = self.client.search(query)
        return [self.normalize_result(feed) for feed in as_list(as_mapping(payload).get("feeds")) if isinstance(feed, Mapping)]

    @operation(OperationPolicy.DEGRADE_TO_EMPTY)
    def get_by_id(self, item_id: str) -> Optional[NormalizedResult]:
        """
        Resolve a feed or episode.

        Accepted forms: ``123`` (feed id), ``episode:123``, ``itunes:123``,
        ``guid:<podcast guid>`` and ``feedurl:<url>``.
        """

        self.require_configured()
        kind, _, value = item_id.partition(":") if ":" in item_id else ("feed", "", item_id)
        if kind == "episode":
            episode = as_mapping(self.client.episode(_to_int(value))).get("episode")
            return self.normalize_episode(episode, detailed=True) if isinstance(episode, Mapping) else None
        if kind == "feed":
            payload = self.client.podcast(_to_int(value))
        elif kind == "itunes":
            payload = self.client.podcast_by_itunes_id(_to_int(value))
        elif kind == "guid":
            payload = self.client.podcast_by_guid(value)
        elif kind == "feedurl":
            payload = self.client.podcast_by_feed_url(value)
        else:
            raise AdapterError(f"Unsupported Podcast Index id prefix: {kind}")
        feed = as_mapping(payload).get("feed")
        if not isinstance(feed, Mapping) or not feed:
            return None
        return self.normalize_result(feed, detailed=True)

    @operation(OperationPolicy.DEGRADE_TO_EMPTY, default=list)
    def episodes(self, feed_id: int, *, max_results: int = 25) -> List[NormalizedResult]:
        self.require_configured()
        payload = self.client.episodes(feed_id, max_results=max_results)
        return [self.normalize_episode(item) for item in as_list(as_mapping(payload).get("items")) if isinstance(item, Mapping)]

    @operation(OperationPolicy.DEGRADE_TO_EMPTY, default=list)
    def trending(self, *, max_results: int = 25, lang: str = "", category: str = "") -> List[NormalizedResult]:
        self.require_configured()
        payload = self.client.trending(max_results=max_results, lang=lang, category=category)
        return [self.normalize_result(feed) for feed in as_list(as_mapping(payload).get("feeds")) if isinstance(feed, Mapping)]

    def normalize_result(self, raw: Mapping[str, Any], *, detailed: bool = False) -> NormalizedResult:
        raw = as_mapping(raw)
        categories = raw.get("categories")
        extra: Dict[str, Any] = {
            "podcastindex_id": raw.get("id") or 0,
            "url": raw.get("url") or "",
            "original_url": raw.get("originalUrl") or "",
            "link": raw.get("link") or "",
            "author": raw.get("author") or "",
            "owner_name": raw.get("ownerName") or "",
            "artwork": raw.get("artwork") or raw.get("image") or "",
            "language": raw.get("language") or "",
            "categories": list(categories.values()) if isinstance(categories, Mapping) else as_list(categories),
            "itunes_id": raw.get("itunesId"),
            "generator": raw.get("generator") or "",
            "explicit": bool(raw.get("explicit", False)),
            "episode_count": raw.get("episodeCount") or 0,
            "newest_item_date": raw.get("newestItemPublishTime"),
        }
        if detailed:
            extra.update(
                last_update_time=raw.get("lastUpdateTime"),
                last_crawl_time=raw.get("lastCrawlTime"),
                last_parse_time=raw.get("lastParseTime"),
                content_type=raw.get("contentType") or "",
                chash=raw.get("chash") or "",
                dead=raw.get("dead") or 0,
                funding=raw.get("funding") or {},
                value=raw.get("value") or {},
            )
        return self._result(
            raw.get("id"),
            media_type="podcast",
            title=raw.get("title") or "",
            date=_timestamp(raw.get("newestItemPublishTime")),
            image=raw.get("image") or raw.get("artwork") or "",
            description=raw.get("description") or "",
            **extra,
        )

    def normalize_episode(self, raw: Mapping[str, Any], *, detailed: bool = False) -> NormalizedResult:
        raw = as_mapping(raw)
        extra: Dict[str, Any] = {
            "podcastindex_id": raw.get("id") or 0,
            "link": raw.get("link") or "",
            "guid": raw.get("guid") or "",
            "date_published": raw.get("datePublished"),
            "enclosure_url": raw.get("enclosureUrl") or "",
            "enclosure_type": raw.get("enclosureType") or "",
            "enclosure_length": raw.get("enclosureLength") or 0,
            "duration": raw.get("duration") or 0,
            "explicit": raw.get("explicit") or 0,
            "episode": raw.get("episode"),
            "season": raw.get("season"),
            "feed_id": raw.get("feedId") or 0,
            "feed_title": raw.get("feedTitle") or "",
            "feed_image": raw.get("feedImage") or "",
            "feed_language": raw.get("feedLanguage") or "",
        }
        if detailed:
            extra.update(
                chapters_url=raw.get("chaptersUrl") or "",
                transcript_url=raw.get("transcriptUrl") or "",
                soundbites=as_list(raw.get("soundbites")),
                persons=as_list(raw.get("persons")),
                value=raw.get("value") or {},
            )
        return self._result(
            raw.get("id"),
            media_type="episode",
            title=raw.get("title") or "",
            date=_timestamp(raw.get("datePublished")),
            image=raw.get("image") or raw.get("feedImage") or "",
            description=raw.get("description") or "",
            **extra,
        )


def _to_int(value: str) -> int:
    try:
        return int(value)
    except ValueError as exc:
        raise AdapterError(f"Expected a numeric Podcast Index id, got {value!r}") from exc
