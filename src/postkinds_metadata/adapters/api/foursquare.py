"""
Foursquare Places API (v3) client and adapter.

Reference: https://location.foursquare.com/developer/reference/places-api-overview
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ..base import (
    NormalizedResult,
    OperationPolicy,
    ProviderAdapter,
    as_list,
    as_mapping,
    operation,
)
from .base import BaseAPIClient, ProviderConfig

DEFAULT_BASE_URL = "https://api.foursquare.com/v3/"
PLACE_FIELDS = (
    "fsq_id,name,location,categories,chains,closed_bucket,date_closed,description,email,features,"
    "geocodes,hours,hours_popular,link,menu,photos,popularity,price,rating,related_places,"
    "social_media,stats,tastes,tel,timezone,tips,verified,website"
)
PHOTO_SIZES = {"small": "100x100", "medium": "300x300", "large": "500x500", "original": "original"}


def photo_url(photo: Mapping[str, Any], size: str = "medium") -> str:
    prefix = photo.get("prefix") or ""
    suffix = photo.get("suffix") or ""
    if not prefix or not suffix:
        return ""
    return f"{prefix}{PHOTO_SIZES.get(size, size)}{suffix}"


def category_icon(category: Mapping[str, Any], size: int = 64) -> str:
    icon = as_mapping(category.get("icon"))
    prefix = icon.get("prefix") or ""
    suffix = icon.get("suffix") or ""
    if prefix and suffix:
        return f"{prefix}{size}{suffix}"
    return ""


class FoursquareClient(BaseAPIClient):
    """Places API client; the API key goes in the ``Authorization`` header verbatim."""

    def __init__(self, config: ProviderConfig, **options: Any) -> None:
        super().__init__(config, **options)
        self.api_key = config.credential("api_key", "")

    def default_headers(self) -> Dict[str, str]:
        return {"Authorization": self.api_key or ""}

    def search(
        self,
        query: str,
        *,
        near: Optional[str] = None,
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        limit: int = 25,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"query": query, "limit": limit}
        if lat is not None and lng is not None:
            params["ll"] = f"{lat},{lng}"
        elif near:
            params["near"] = near
        return self.cached_get("places/search", params)

    def nearby(self, lat: float, lng: float, *, query: str = "", radius: int = 1000, limit: int = 25) -> Dict[str, Any]:
        params: Dict[str, Any] = {"ll": f"{lat},{lng}", "radius": min(radius, 100000), "limit": min(limit, 50)}
        if query:
            params["query"] = query
        return self.cached_get("places/nearby", params, ttl=3600)

    def place(self, fsq_id: str) -> Dict[str, Any]:
        return self.cached_get(f"places/{fsq_id}", {"fields": PLACE_FIELDS})

    def photos(self, fsq_id: str, *, limit: int = 10) -> List[Any]:
        return as_list(self.cached_get(f"places/{fsq_id}/photos", {"limit": limit}))


@dataclass(slots=True)
class FoursquareAdapter(ProviderAdapter):
    """Normalizes Foursquare places into venue records."""

    client: FoursquareClient

    source_id = "foursquare"
    docs_url = "https://location.foursquare.com/developer/reference/places-api-overview"
    default_type = "venue"

    def is_configured(self) -> bool:
        return bool(self.client.api_key)

    def test_connection(self) -> bool:
        self.require_configured()
        self.client.get("places/search", {"query": "coffee", "near": "New York", "limit": 1})
        return True

    @operation(OperationPolicy.DEGRADE_TO_EMPTY, default=list)
    def search(self, query: str, **filters: Any) -> List[NormalizedResult]:
        self.require_configured()
        payload = self.client.search(
            query,
            near=filters.get("near"),
            lat=_coordinate(filters.get("lat")),
            lng=_coordinate(filters.get("lng")),
        )
        return [self.normalize_result(place) for place in as_list(as_mapping(payload).get("results")) if isinstance(place, Mapping)]

    @operation(OperationPolicy.DEGRADE_TO_EMPTY, default=list)
    def nearby(self, lat: float, lng: float, *, query: str = "", radius: int = 1000) -> List[NormalizedResult]:
        self.require_configured()
        payload = self.client.nearby(lat, lng, query=query, radius=radius)
        return [self.normalize_result(place) for place in as_list(as_mapping(payload).get("results")) if isinstance(place, Mapping)]

    @operation(OperationPolicy.DEGRADE_TO_EMPTY)
    def get_by_id(self, item_id: str) -> Optional[NormalizedResult]:
        self.require_configured()
        payload = as_mapping(self.client.place(item_id))
        if not payload:
            return None
        return self.normalize_result(payload, detailed=True)

    @operation(OperationPolicy.DEGRADE_TO_EMPTY, default=list)
    def photos(self, fsq_id: str, *, limit: int = 10) -> List[Dict[str, Any]]:
        self.require_configured()
        return [_photo(item) for item in self.client.photos(fsq_id, limit=limit) if isinstance(item, Mapping)]

    def normalize_result(self, raw: Mapping[str, Any], *, detailed: bool = False) -> NormalizedResult:
        raw = as_mapping(raw)
        location = as_mapping(raw.get("location"))
        geocode = as_mapping(as_mapping(raw.get("geocodes")).get("main"))
        categories = [category for category in as_list(raw.get("categories")) if isinstance(category, Mapping)]
        primary = categories[0] if categories else {}
        address_parts = [location.get(key) for key in ("address", "locality", "region", "country") if location.get(key)]
        photos = [_photo(item) for item in as_list(raw.get("photos")) if isinstance(item, Mapping)]

        extra: Dict[str, Any] = {
            "fsq_id": raw.get("fsq_id") or "",
            "address": location.get("address") or "",
            "address_extended": location.get("address_extended") or "",
            "cross_street": location.get("cross_street") or "",
            "locality": location.get("locality") or "",
            "region": location.get("region") or "",
            "postcode": location.get("postcode") or "",
            "country": location.get("country") or "",
            "formatted_address": location.get("formatted_address") or ", ".join(address_parts),
            "latitude": geocode.get("latitude"),
            "longitude": geocode.get("longitude"),
            "distance": raw.get("distance"),
            "category": primary.get("name") or "",
            "category_id": primary.get("id") or "",
            "category_icon": category_icon(primary),
            "categories": [
                {"id": category.get("id") or "", "name": category.get("name") or "", "icon": category_icon(category)}
                for category in categories
            ],
            "timezone": raw.get("timezone") or "",
        }
        if detailed:
            stats = as_mapping(raw.get("stats"))
            extra.update(
                website=raw.get("website") or "",
                tel=raw.get("tel") or "",
                email=raw.get("email") or "",
                rating=raw.get("rating"),
                price=raw.get("price"),
                popularity=raw.get("popularity"),
                verified=bool(raw.get("verified", False)),
                closed=raw.get("closed_bucket") or "VeryLikelyOpen",
                hours=raw.get("hours") or {},
                social_media=raw.get("social_media") or {},
                photos=photos,
                features=raw.get("features") or {},
                stats={
                    "total_photos": stats.get("total_photos") or 0,
                    "total_tips": stats.get("total_tips") or 0,
                    "total_ratings": stats.get("total_ratings") or 0,
                },
                tastes=as_list(raw.get("tastes")),
                related_places=raw.get("related_places") or {},
                chains=[
                    {"id": chain.get("id") or "", "name": chain.get("name") or ""}
                    for chain in as_list(raw.get("chains"))
                    if isinstance(chain, Mapping)
                ],
            )
        return self._result(
            raw.get("fsq_id"),
            media_type="venue",
            title=raw.get("name") or "",
            image=photos[0]["url_medium"] if photos else "",
            description=raw.get("description") or "" if detailed else "",
            **extra,
        )


def _photo(photo: Mapping[str, Any]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": photo.get("id") or "",
        "created_at": photo.get("created_at") or "",
        "prefix": photo.get("prefix") or "",
        "suffix": photo.get("suffix") or "",
        "width": photo.get("width") or 0,
        "height": photo.get("height") or 0,
    }
    for name in PHOTO_SIZES:
        payload[f"url_{name}"] = photo_url(photo, name)
    return payload


def _coordinate(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
