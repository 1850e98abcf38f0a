from __future__ import annotations

import logging

import pytest

from postkinds_metadata.config import SecretsBundle, load_secrets
from postkinds_metadata.core.cache import FileCacheStore, MemoryCacheStore
from postkinds_metadata.core.context import CacheBackend, ExecutionContext, ExecutionOptions
from postkinds_metadata.core.events import ApiEvent, EventLevel, LoggingEventSink, MemoryEventSink
from postkinds_metadata.core.logging import StructuredLogFormatter, configure_logging, get_logger, log_progress, log_with_extra


def test_execution_context_build_default(tmp_path):
    cache_dir = tmp_path / "cache"
    context = ExecutionContext.build_default(cache_dir=cache_dir, enabled_providers=["tmdb", "bgg"], secrets=SecretsBundle())

    assert context.cache_dir == cache_dir
    assert context.cache_dir.exists()
    assert context.is_enabled("tmdb")
    assert context.is_enabled("bgg")
    assert not context.is_enabled("trakt")

    context.enable("trakt")
    assert context.is_enabled("trakt")
    context.disable("trakt")
    assert not context.is_enabled("trakt")

    assert isinstance(context.options, ExecutionOptions)
    assert isinstance(context.cache, MemoryCacheStore)


def test_execution_context_file_cache_backend(tmp_path):
    context = ExecutionContext.build_default(
        cache_dir=tmp_path,
        options=ExecutionOptions(cache_backend=CacheBackend.FILE),
        secrets=SecretsBundle(),
    )

    assert isinstance(context.cache, FileCacheStore)
    assert context.cache.directory == tmp_path / "http"


def test_empty_allowlist_enables_everything(tmp_path):
    context = ExecutionContext.build_default(cache_dir=tmp_path, secrets=SecretsBundle())

    assert context.is_enabled("anything")


def test_secrets_bundle_lookup():
    bundle = SecretsBundle(data={"tmdb": {"api_key": "abc", "nested": {"x": 1}}, "broken": "not-a-table"})

    assert bundle.provider_section("tmdb")["api_key"] == "abc"
    assert bundle.provider_section("broken") == {}
    assert bundle.provider_section("missing") == {}
    assert bundle.get_option("tmdb.nested.x") == 1
    assert bundle.get_option("tmdb.unknown", "fallback") == "fallback"


def test_load_secrets_from_env_override(tmp_path, monkeypatch):
    secrets_path = tmp_path / "custom.toml"
    secrets_path.write_text('[trakt]\nclient_id = "cid"\nrate_limit = 0.5\n', encoding="utf-8")
    monkeypatch.setenv("POSTKINDS_SECRETS_PATH", str(secrets_path))

    bundle = load_secrets(strict=True)

    assert bundle.source_path == secrets_path
    assert bundle.get_option("trakt.client_id") == "cid"


def test_load_secrets_strict_without_file(tmp_path, monkeypatch):
    monkeypatch.setenv("POSTKINDS_SECRETS_PATH", str(tmp_path / "missing.toml"))
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("postkinds_metadata.config._discover_project_root", lambda: None)

    assert load_secrets().data == {}
    with pytest.raises(FileNotFoundError):
        load_secrets(strict=True)


@pytest.fixture
def reset_logging_handlers():
    root = logging.getLogger()
    existing_handlers = list(root.handlers)
    yield
    root.handlers = existing_handlers


class _ListHandler(logging.Handler):
    def __init__(self, formatter: logging.Formatter):
        super().__init__()
        self.records: list[logging.LogRecord] = []
        self.setFormatter(formatter)

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - trivial
        self.records.append(record)


def _collect(logger_name: str):
    configure_logging("DEBUG", force=True)
    root = logging.getLogger()
    collector = _ListHandler(root.handlers[0].formatter)
    collector.setLevel(logging.DEBUG)
    root.addHandler(collector)
    return get_logger(logger_name), collector


def test_structured_formatter_appends_extras():
    formatter = StructuredLogFormatter(use_color=False)
    record = logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=42,
        msg="HTTP response",
        args=(),
        exc_info=None,
    )
    record.provider = "tmdb"
    record.status_code = 200
    record.tags = ("cli",)

    formatted = formatter.format(record)

    assert "HTTP response" in formatted
    assert "provider=tmdb status_code=200" in formatted
    assert "tags=[cli]" in formatted


def test_configure_logging_installs_structured_formatter(reset_logging_handlers):
    configure_logging(force=True)
    root = logging.getLogger()
    assert root.handlers, "expected at least one handler configured"
    assert isinstance(root.handlers[0].formatter, StructuredLogFormatter)


def test_bound_extras_reach_the_record(reset_logging_handlers):
    configure_logging("DEBUG", force=True)
    root = logging.getLogger()
    collector = _ListHandler(root.handlers[0].formatter)
    root.addHandler(collector)
    logger = get_logger("test.bound", extra={"provider": "tmdb", "operation": "search"})
    try:
        log_with_extra(logger, logging.INFO, "Searching provider", {"state": "sent", "attempt": None})
    finally:
        root.removeHandler(collector)

    record = collector.records[0]
    assert getattr(record, "provider") == "tmdb"
    assert getattr(record, "operation") == "search"
    assert getattr(record, "state") == "sent"
    assert "provider=tmdb operation=search state=sent" in collector.format(record)


def test_log_with_extra_renames_reserved_keys(reset_logging_handlers):
    logger, collector = _collect("test.reserved")
    try:
        log_with_extra(logger, logging.INFO, "Lookup", {"name": "Alien", "module": "x", "url": "https://x.test"})
    finally:
        logging.getLogger().removeHandler(collector)

    record = collector.records[0]
    assert getattr(record, "ctx_name") == "Alien"
    assert getattr(record, "ctx_module") == "x"
    assert getattr(record, "url") == "https://x.test"
    assert record.name == "test.reserved"


def test_get_logger_binds_tags_and_drops_empty_extras():
    logger = get_logger("test.tags", tags=["cli", "search"], extra={"provider": "bgg", "url": None})

    assert logger.extra == {"tags": ("cli", "search"), "provider": "bgg"}


def test_formatter_colours_level_only_when_asked():
    record = logging.LogRecord("test.colour", logging.WARNING, __file__, 1, "Slow down", (), None)

    assert "\033[33mWARNING\033[0m" in StructuredLogFormatter(use_color=True).format(record)
    assert "| WARNING |" in StructuredLogFormatter(use_color=False).format(record)
    assert record.levelname == "WARNING"


def test_logging_event_sink_maps_levels(reset_logging_handlers):
    logger, collector = _collect("test.events")
    sink = LoggingEventSink(logger=logger)
    try:
        sink.emit(ApiEvent(level=EventLevel.ERROR, provider="bgg", message="boom", context={"status_code": 503}))
        sink.emit(ApiEvent(level=EventLevel.DEBUG, provider="bgg", message="trace"))
    finally:
        logging.getLogger().removeHandler(collector)

    assert [record.levelno for record in collector.records] == [logging.WARNING, logging.DEBUG]
    assert getattr(collector.records[0], "provider") == "bgg"
    assert getattr(collector.records[0], "status_code") == 503


def test_memory_event_sink_filters_errors():
    sink = MemoryEventSink()
    sink.emit(ApiEvent(level=EventLevel.DEBUG, provider="x", message="a"))
    sink.emit(ApiEvent(level=EventLevel.ERROR, provider="x", message="b"))

    assert [event.message for event in sink.errors()] == ["b"]
    assert sink.messages() == ["a", "b"]


def test_log_progress_keeps_bound_provider_when_none_given(reset_logging_handlers):
    configure_logging("DEBUG", force=True)
    root = logging.getLogger()
    collector = _ListHandler(root.handlers[0].formatter)
    root.addHandler(collector)
    logger = get_logger("test.progress", extra={"provider": "tmdb"})
    try:
        log_progress(logger, "Cache cleared", operation="cache-clear")
    finally:
        root.removeHandler(collector)

    record = collector.records[0]
    assert getattr(record, "provider") == "tmdb"
    assert getattr(record, "operation") == "cache-clear"
    assert "provider=tmdb operation=cache-clear" in collector.format(record)
