from __future__ import annotations

import httpx
import pytest

from postkinds_metadata.adapters.api.openlibrary import (
    DEFAULT_BASE_URL,
    OpenLibraryAdapter,
    OpenLibraryClient,
    clean_isbn,
    cover_url,
    is_isbn,
)

WORK = {
    "key": "/works/OL45883W",
    "title": "Fantastic Mr Fox",
    "description": {"type": "/type/text", "value": "A fox outwits three farmers."},
    "covers": [6498519],
    "first_publish_date": "1970",
    "subjects": ["Foxes"],
    "authors": [{"author": {"key": "/authors/OL34184A"}}],
}
EDITIONS = {
    "entries": [
        {
            "key": "/books/OL7353617M",
            "title": "Fantastic Mr. Fox",
            "publish_date": "October 1, 1988",
            "isbn_10": ["0140328726"],
            "isbn_13": ["9780140328721"],
            "works": [{"key": "/works/OL45883W"}],
        }
    ]
}


def _handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/works/OL45883W.json":
        return httpx.Response(200, json=WORK)
    if path == "/works/OL45883W/editions.json":
        return httpx.Response(200, json=EDITIONS)
    if path == "/authors/OL34184A.json":
        return httpx.Response(200, json={"name": "Roald Dahl"})
    if path == "/books/OL7353617M.json":
        return httpx.Response(200, json=EDITIONS["entries"][0])
    if path == "/api/books":
        return httpx.Response(
            200,
            json={
                "ISBN:9780140328721": {
                    "key": "/books/OL7353617M",
                    "title": "Fantastic Mr. Fox",
                    "authors": [{"name": "Roald Dahl"}],
                    "cover": {"medium": "https://covers.openlibrary.org/b/id/1-M.jpg"},
                }
            },
        )
    if path == "/search.json":
        return httpx.Response(200, json={"docs": [{"key": "/works/OL1W", "title": "Found by search"}]})
    return httpx.Response(404, json={"error": "notfound"})


def _adapter(make_client, handler=_handler) -> OpenLibraryAdapter:
    return OpenLibraryAdapter(client=make_client(handler, OpenLibraryClient, name="openlibrary", base_url=DEFAULT_BASE_URL))


@pytest.mark.parametrize(
    "value, expected",
    [("978-0-14-032872-1", True), ("014032872X", True), ("0140328726", True), ("OL45883W", False), ("12345", False)],
)
def test_isbn_detection(value, expected):
    assert is_isbn(value) is expected


def test_cover_helpers():
    assert cover_url(None) == ""
    assert cover_url(42, "L") == "https://covers.openlibrary.org/b/id/42-L.jpg"
    assert clean_isbn("978 0-14") == "978014"


def test_search_sends_author_filter(make_client):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _handler(request)

    results = _adapter(make_client, handler).search("fox", author="Dahl")

    assert results[0].title == "Found by search"
    assert results[0].id == "OL1W"
    assert seen[0].url.params["author"] == "Dahl"
    assert seen[0].url.params["q"] == "fox"


def test_get_work_resolves_authors_and_editions(make_client):
    result = _adapter(make_client).get_by_id("OL45883W")

    assert result.type == "work"
    assert result.description == "A fox outwits three farmers."
    assert result.image == cover_url(6498519)
    assert result["authors"][0]["name"] == "Roald Dahl"
    assert result["editions"][0]["isbn"] == "9780140328721"
    assert result["editions"][0]["work_key"] == "/works/OL45883W"


def test_get_edition(make_client):
    result = _adapter(make_client).get_by_id("OL7353617M")

    assert result.type == "edition"
    assert result["isbn_10"] == "0140328726"
    assert result.date == "October 1, 1988"


def test_get_by_isbn_uses_books_api(make_client):
    result = _adapter(make_client).get_by_id("978-0-14-032872-1")

    assert result.type == "book"
    assert result.id == "OL7353617M"
    assert result["authors"] == ["Roald Dahl"]
    assert result.image.endswith("1-M.jpg")


def test_get_by_isbn_falls_back_to_search(make_client):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/books":
            return httpx.Response(200, json={})
        return _handler(request)

    result = _adapter(make_client, handler).get_by_id("0140328726")

    assert result.title == "Found by search"


def test_unrecognised_id_degrades(make_client):
    adapter = _adapter(make_client)

    assert adapter.get_by_id("not-an-id") is None
    assert adapter.client.events.errors()[0].context["operation"] == "get_by_id"


def test_normalize_result_tolerates_missing_fields(make_client):
    record = _adapter(make_client).normalize_result({})

    assert record.source == "openlibrary"
    assert record.type == "book"
    assert record.date == ""
    assert record["authors"] == []


def test_connection_needs_no_credentials(make_client):
    adapter = _adapter(make_client)

    assert adapter.is_configured() is True
    assert adapter.verify().success is True
