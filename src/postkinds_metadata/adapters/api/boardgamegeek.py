"""
BoardGameGeek XML API2 client and adapter.

BGG answers ``202 Accepted`` while it prepares a response, so the client is
built with queued-status handling enabled. Responses are XML; :meth:`decode`
turns them into plain dictionaries so they can be cached like JSON payloads.

Reference: https://boardgamegeek.com/wiki/page/BGG_XML_API2
"""

from __future__ import annotations

import html
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import httpx

from ..base import (
    AdapterError,
    NormalizedResult,
    OperationPolicy,
    ProviderAdapter,
    as_list,
    as_mapping,
    operation,
)
from .base import RAW_BODY_KEY, BaseAPIClient, ProviderConfig
from .errors import DecodeError

DEFAULT_BASE_URL = "https://boardgamegeek.com/xmlapi2/"
GAME_TYPES = {
    "boardgame": "Board Games",
    "boardgameexpansion": "Board Game Expansions",
    "videogame": "Video Games",
    "rpgitem": "RPG Items",
}
_LINK_FIELDS = {
    "boardgamedesigner": "designers",
    "boardgamepublisher": "publishers",
    "boardgamecategory": "categories",
    "boardgamemechanic": "mechanics",
}


def game_url(game_id: str, game_type: str = "boardgame") -> str:
    if not game_id:
        return ""
    if game_type == "videogame":
        return f"https://videogamegeek.com/videogame/{game_id}"
    return f"https://boardgamegeek.com/boardgame/{game_id}"


class BoardGameGeekClient(BaseAPIClient):
    """XML API2 client authenticated with an application bearer token."""

    def __init__(self, config: ProviderConfig, **options: Any) -> None:
        options.setdefault("queued_status", True)
        super().__init__(config, **options)
        self.api_token = config.credential("api_token", "")

    def default_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/xml"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def decode(self, response: httpx.Response) -> Any:
        text = response.text
        if not text.strip():
            return {}
        try:
            root = ET.fromstring(text)
        except ET.ParseError as exc:
            if response.status_code >= 400:
                return {RAW_BODY_KEY: text}
            raise DecodeError(self.provider, f"Invalid XML from BoardGameGeek: {exc}") from exc
        return parse_document(root)

    def search(self, query: str, game_type: str = "boardgame") -> Dict[str, Any]:
        return self.cached_get("search", {"query": query, "type": game_type})

    def thing(self, game_id: str, *, stats: bool = True) -> Dict[str, Any]:
        params: Dict[str, Any] = {"id": game_id}
        if stats:
            params["stats"] = 1
        return self.cached_get("thing", params)


def parse_document(root: ET.Element) -> Dict[str, Any]:
    """Flatten an XML API2 document into ``{"items": [...]}`` or ``{"error": ...}``."""

    if root.tag in {"errors", "error"}:
        message = root.findtext(".//message") or (root.text or "").strip()
        return {"error": message}
    return {"items": [_parse_item(item) for item in root.findall("item")]}


def _value(element: Optional[ET.Element]) -> str:
    if element is None:
        return ""
    return element.get("value", "")


def _parse_item(item: ET.Element) -> Dict[str, Any]:
    names = [{"type": name.get("type", ""), "value": name.get("value", "")} for name in item.findall("name")]
    primary = next((name["value"] for name in names if name["type"] == "primary"), "")
    if not primary and names:
        primary = names[0]["value"]
    parsed: Dict[str, Any] = {
        "id": item.get("id", ""),
        "type": item.get("type", ""),
        "name": primary,
        "year": _value(item.find("yearpublished")),
        "description": html.unescape(item.findtext("description") or "").strip(),
        "image": (item.findtext("image") or "").strip(),
        "thumbnail": (item.findtext("thumbnail") or "").strip(),
        "min_players": _int(_value(item.find("minplayers"))),
        "max_players": _int(_value(item.find("maxplayers"))),
        "play_time": _int(_value(item.find("playingtime"))),
    }
    ratings = item.find("statistics/ratings")
    if ratings is not None:
        parsed["rating"] = round(_float(_value(ratings.find("average"))), 1)
        parsed["rating_count"] = _int(_value(ratings.find("usersrated")))
    for field_name in _LINK_FIELDS.values():
        parsed[field_name] = []
    for link in item.findall("link"):
        field_name = _LINK_FIELDS.get(link.get("type", ""))
        if field_name:
            parsed[field_name].append(link.get("value", ""))
    return parsed


def _int(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _float(value: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


@dataclass(slots=True)
class BoardGameGeekAdapter(ProviderAdapter):
    """Normalizes BGG search hits and ``thing`` records."""

    client: BoardGameGeekClient

    source_id = "bgg"
    docs_url = "https://boardgamegeek.com/wiki/page/BGG_XML_API2"
    default_type = "boardgame"

    def is_configured(self) -> bool:
        return bool(self.client.api_token)

    def test_connection(self) -> bool:
        self.require_configured()
        self.client.get("search", {"query": "Catan", "type": "boardgame"})
        return True

    @operation(OperationPolicy.DEGRADE_TO_EMPTY, default=list)
    def search(self, query: str, **filters: Any) -> List[NormalizedResult]:
        if not query:
            return []
        self.require_configured()
        game_type = filters.get("media_type") or filters.get("type") or "boardgame"
        if game_type not in GAME_TYPES:
            raise AdapterError(f"Unsupported BoardGameGeek type: {game_type}")
        payload = as_mapping(self.client.search(query, game_type))
        return [
            self.normalize_result(item)
            for item in as_list(payload.get("items"))
            if isinstance(item, Mapping) and item.get("id") and item.get("name")
        ]

    @operation(OperationPolicy.DEGRADE_TO_EMPTY)
    def get_by_id(self, item_id: str) -> Optional[NormalizedResult]:
        if not item_id:
            return None
        self.require_configured()
        items = as_list(as_mapping(self.client.thing(item_id)).get("items"))
        if not items or not isinstance(items[0], Mapping):
            return None
        return self.normalize_result(items[0], detailed=True)

    def normalize_result(self, raw: Mapping[str, Any], *, detailed: bool = False) -> NormalizedResult:
        raw = as_mapping(raw)
        game_id = str(raw.get("id") or "")
        game_type = raw.get("type") or "boardgame"
        extra: Dict[str, Any] = {
            "year": raw.get("year") or "",
            "url": game_url(game_id, game_type),
        }
        if detailed:
            extra.update(
                thumbnail=raw.get("thumbnail") or "",
                rating=raw.get("rating") or 0,
                rating_count=raw.get("rating_count") or 0,
                min_players=raw.get("min_players") or 0,
                max_players=raw.get("max_players") or 0,
                play_time=raw.get("play_time") or 0,
                designers=as_list(raw.get("designers")),
                publishers=as_list(raw.get("publishers")),
                categories=as_list(raw.get("categories")),
                mechanics=as_list(raw.get("mechanics")),
            )
        return self._result(
            game_id,
            media_type=game_type,
            title=raw.get("name") or "",
            date=raw.get("year") or "",
            image=raw.get("image") or raw.get("thumbnail") or "",
            description=raw.get("description") or "",
            **extra,
        )
