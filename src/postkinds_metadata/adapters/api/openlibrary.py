"""
Open Library client and adapter.

No credentials are required. ``get_by_id`` accepts an ISBN (10 or 13 digits,
hyphens allowed), a work key (``OL45883W`` or ``/works/OL45883W``) or an
edition key (``OL7353617M``).

Reference: https://openlibrary.org/developers/api
"""

from __future__ import annotations

import re
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
)
from .base import BaseAPIClient

DEFAULT_BASE_URL = "https://openlibrary.org/"
COVERS_URL = "https://covers.openlibrary.org/"
_ISBN_PATTERN = re.compile(r"^[0-9]{9}[0-9X]$|^[0-9]{13}$")


def cover_url(cover_id: Any, size: str = "M") -> str:
    if not cover_id:
        return ""
    return f"{COVERS_URL}b/id/{cover_id}-{size}.jpg"


def cover_by_isbn(isbn: str, size: str = "M") -> str:
    return f"{COVERS_URL}b/isbn/{clean_isbn(isbn)}-{size}.jpg"


def cover_by_olid(olid: str, size: str = "M") -> str:
    return f"{COVERS_URL}b/olid/{olid}-{size}.jpg"


def author_photo(author_key: str, size: str = "M") -> str:
    return f"{COVERS_URL}a/olid/{_strip_prefix(author_key, '/authors/')}-{size}.jpg"


def clean_isbn(value: str) -> str:
    return value.replace("-", "").replace(" ", "").upper()


def is_isbn(value: str) -> bool:
    return bool(_ISBN_PATTERN.match(clean_isbn(value)))


def _strip_prefix(key: str, prefix: str) -> str:
    return key[len(prefix) :] if key.startswith(prefix) else key


class OpenLibraryClient(BaseAPIClient):
    """Thin wrapper around the Open Library JSON endpoints."""

    def search(self, query: str, *, author: Optional[str] = None, isbn: Optional[str] = None, limit: int = 25) -> Dict[str, Any]:
        params: Dict[str, Any] = {"limit": limit}
        if query:
            params["q"] = query
        if author:
            params["author"] = author
        if isbn:
            params["isbn"] = isbn
        return self.cached_get("search.json", params)

    def books_by_isbn(self, isbn: str) -> Dict[str, Any]:
        return self.cached_get("api/books", {"bibkeys": f"ISBN:{isbn}", "format": "json", "jscmd": "data"})

    def work(self, work_key: str) -> Dict[str, Any]:
        return self.cached_get(f"works/{_strip_prefix(work_key, '/works/')}.json")

    def work_editions(self, work_key: str, limit: int = 10) -> Dict[str, Any]:
        return self.cached_get(f"works/{_strip_prefix(work_key, '/works/')}/editions.json", {"limit": limit})

    def edition(self, edition_key: str) -> Dict[str, Any]:
        return self.cached_get(f"books/{_strip_prefix(edition_key, '/books/')}.json")

    def author(self, author_key: str) -> Dict[str, Any]:
        return self.cached_get(f"authors/{_strip_prefix(author_key, '/authors/')}.json")


@dataclass(slots=True)
class OpenLibraryAdapter(ProviderAdapter):
    """Normalizes Open Library search docs, works and editions."""

    client: OpenLibraryClient

    source_id = "openlibrary"
    docs_url = "https://openlibrary.org/developers/api"
    default_type = "book"

    def test_connection(self) -> bool:
        self.client.get("search.json", {"q": "test", "limit": 1})
        return True

    @operation(OperationPolicy.DEGRADE_TO_EMPTY, default=list)
    def search(self, query: str, **filters: Any) -> List[NormalizedResult]:
        payload = as_mapping(self.client.search(query, author=filters.get("author")))
        return [self.normalize_result(doc) for doc in as_list(payload.get("docs")) if isinstance(doc, Mapping)]

    @operation(OperationPolicy.DEGRADE_TO_EMPTY)
    def get_by_id(self, item_id: str) -> Optional[NormalizedResult]:
        if is_isbn(item_id):
            return self._by_isbn(clean_isbn(item_id))
        key = item_id.strip()
        if key.startswith("/books/") or (key.startswith("OL") and key.endswith("M")):
            return self._edition(as_mapping(self.client.edition(key)))
        if key.startswith("/works/") or key.startswith("OL"):
            return self._work(key)
        raise AdapterError(f"Unrecognised Open Library id: {item_id}")

    def _by_isbn(self, isbn: str) -> Optional[NormalizedResult]:
        payload = as_mapping(self.client.books_by_isbn(isbn))
        record = payload.get(f"ISBN:{isbn}")
        if isinstance(record, Mapping):
            return self._books_api(record, isbn)
        docs = as_list(as_mapping(self.client.search("", isbn=isbn, limit=1)).get("docs"))
        if docs and isinstance(docs[0], Mapping):
            return self.normalize_result(docs[0])
        return None

    def _work(self, key: str) -> NormalizedResult:
        raw = as_mapping(self.client.work(key))
        description = raw.get("description", "")
        if isinstance(description, Mapping):
            description = description.get("value", "")
        covers = as_list(raw.get("covers"))
        cover_id = covers[0] if covers else None
        authors = []
        for reference in as_list(raw.get("authors")):
            author_key = as_mapping(as_mapping(reference).get("author")).get("key")
            if not author_key:
                continue
            author = as_mapping(self.client.author(author_key))
            authors.append(
                {
                    "key": author_key,
                    "name": author.get("name", ""),
                    "photo": author_photo(author_key),
                }
            )
        editions = [
            self._edition(item).to_dict()
            for item in as_list(as_mapping(self.client.work_editions(key)).get("entries"))
            if isinstance(item, Mapping)
        ]
        image = cover_url(cover_id)
        if not image:
            image = next((edition["image"] for edition in editions if edition.get("image")), "")
        return self._result(
            _strip_prefix(raw.get("key", ""), "/works/"),
            media_type="work",
            title=raw.get("title", ""),
            date=raw.get("first_publish_date", ""),
            image=image,
            description=description if isinstance(description, str) else "",
            key=raw.get("key", ""),
            cover_id=cover_id,
            subjects=as_list(raw.get("subjects")),
            subject_places=as_list(raw.get("subject_places")),
            subject_times=as_list(raw.get("subject_times")),
            subject_people=as_list(raw.get("subject_people")),
            authors=authors,
            editions=editions,
        )

    def _edition(self, raw: Mapping[str, Any]) -> NormalizedResult:
        covers = as_list(raw.get("covers"))
        cover_id = covers[0] if covers else None
        isbn_10 = (as_list(raw.get("isbn_10")) or [""])[0]
        isbn_13 = (as_list(raw.get("isbn_13")) or [""])[0]
        works = as_list(raw.get("works"))
        return self._result(
            _strip_prefix(raw.get("key", ""), "/books/"),
            media_type="edition",
            title=raw.get("title", ""),
            date=raw.get("publish_date", ""),
            image=cover_url(cover_id),
            key=raw.get("key", ""),
            subtitle=raw.get("subtitle", ""),
            full_title=raw.get("full_title", ""),
            publishers=as_list(raw.get("publishers")),
            publish_places=as_list(raw.get("publish_places")),
            number_of_pages=raw.get("number_of_pages"),
            isbn_10=isbn_10,
            isbn_13=isbn_13,
            isbn=isbn_13 or isbn_10,
            languages=as_list(raw.get("languages")),
            physical_format=raw.get("physical_format", ""),
            cover_id=cover_id,
            work_key=as_mapping(works[0]).get("key", "") if works else "",
        )

    def _books_api(self, raw: Mapping[str, Any], isbn: str) -> NormalizedResult:
        cover = as_mapping(raw.get("cover"))
        return self._result(
            _strip_prefix(raw.get("key", ""), "/books/") or isbn,
            media_type="book",
            title=raw.get("title", ""),
            date=raw.get("publish_date", ""),
            image=cover.get("medium") or cover.get("small") or "",
            subtitle=raw.get("subtitle", ""),
            authors=[as_mapping(item).get("name", "") for item in as_list(raw.get("authors"))],
            publishers=[as_mapping(item).get("name", "") for item in as_list(raw.get("publishers"))],
            number_of_pages=raw.get("number_of_pages"),
            isbn=isbn,
            subjects=[as_mapping(item).get("name", "") for item in as_list(raw.get("subjects"))],
            url=raw.get("url", ""),
            key=raw.get("key", ""),
        )

    def normalize_result(self, raw: Mapping[str, Any], *, detailed: bool = False) -> NormalizedResult:
        raw = as_mapping(raw)
        cover_id = raw.get("cover_i")
        key = raw.get("key", "")
        year = raw.get("first_publish_year")
        return self._result(
            _strip_prefix(key, "/works/"),
            media_type="book",
            title=raw.get("title", ""),
            date="" if year is None else str(year),
            image=cover_url(cover_id),
            key=key,
            ol_work_id=_strip_prefix(key, "/works/"),
            subtitle=raw.get("subtitle", ""),
            authors=as_list(raw.get("author_name")),
            author_keys=as_list(raw.get("author_key")),
            first_publish_year=year,
            edition_count=raw.get("edition_count") or 0,
            isbn=as_list(raw.get("isbn")),
            publisher=as_list(raw.get("publisher")),
            language=as_list(raw.get("language")),
            subjects=as_list(raw.get("subject")),
            cover_id=cover_id,
            cover_large=cover_url(cover_id, "L"),
            number_of_pages=raw.get("number_of_pages_median"),
            ratings_average=raw.get("ratings_average"),
            ratings_count=raw.get("ratings_count"),
        )
