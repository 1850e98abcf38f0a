"""
Logging setup for the postkinds metadata clients.

Provider clients log through :func:`get_logger` so every record carries the
same structured ``extra`` payload (provider name, HTTP method, attempt number,
cache outcome). :class:`StructuredLogFormatter` renders those extras as
``key=value`` pairs after the message.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from copy import copy
from logging import Logger, LoggerAdapter
from typing import Any, Iterator, Mapping, MutableMapping, Optional, Sequence

DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LEVEL = "INFO"
_ENV_LEVEL = "POSTKINDS_LOG_LEVEL"
_ENV_COLOR = "POSTKINDS_LOG_COLOR"

# Extras rendered first, in this order; anything else follows alphabetically.
_FOCUS_KEYS: Sequence[str] = (
    "provider",
    "operation",
    "state",
    "method",
    "url",
    "status_code",
    "attempt",
    "delay",
    "cache",
    "error",
    "tags",
)
_LEVEL_COLOURS = {
    "DEBUG": "36",
    "INFO": "32",
    "WARNING": "33",
    "ERROR": "31",
    "CRITICAL": "95",
}
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))) | {"message", "asctime"}

_configured = False


def _resolve_level(level: Optional[int | str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName((level or os.getenv(_ENV_LEVEL) or DEFAULT_LEVEL).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _wants_colour(stream: Any) -> bool:
    preference = os.getenv(_ENV_COLOR, "").strip().lower()
    if preference in {"1", "true", "yes", "on"}:
        return True
    if preference in {"0", "false", "no", "off"}:
        return False
    return bool(getattr(stream, "isatty", lambda: False)())


def _record_extras(record: logging.LogRecord) -> Iterator[tuple[str, Any]]:
    extras = {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_") and value is not None
    }
    for key in _FOCUS_KEYS:
        if key in extras:
            yield key, extras.pop(key)
    yield from sorted(extras.items())


def _render(value: Any) -> str:
    if isinstance(value, (list, tuple, set)):
        return "[" + ", ".join(_render(item) for item in value) + "]"
    if isinstance(value, Mapping):
        return json.dumps(dict(value), ensure_ascii=False, default=str)
    if isinstance(value, float):
        return f"{value:.4g}"
    return str(value)


class StructuredLogFormatter(logging.Formatter):
    """Formatter that appends ``key=value`` extras, optionally colouring the level name."""

    def __init__(self, *, use_color: bool = False) -> None:
        super().__init__(DEFAULT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        working = copy(record)
        colour = _LEVEL_COLOURS.get(working.levelname) if self.use_color else None
        if colour:
            working.levelname = f"\033[{colour}m{working.levelname}\033[0m"
        line = super().format(working)
        extras = " ".join(f"{key}={_render(value)}" for key, value in _record_extras(record))
        return f"{line} | {extras}" if extras else line


def configure_logging(level: Optional[int | str] = None, *, force: bool = False) -> None:
    """
    Install a stderr handler with :class:`StructuredLogFormatter` on the root logger.

    Parameters
    ----------
    level:
        Optional logging level override. Falls back to ``POSTKINDS_LOG_LEVEL`` or ``INFO``.
    force:
        Reapply the configuration even when logging was already set up.
    """

    global _configured
    if _configured and not force:
        return
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(_resolve_level(level))
    handler.setFormatter(StructuredLogFormatter(use_color=_wants_colour(handler.stream)))
    logging.basicConfig(level=_resolve_level(level), handlers=[handler], force=force)
    _configured = True


def get_logger(
    name: str,
    *,
    level: Optional[int | str] = None,
    tags: Optional[Sequence[str]] = None,
    extra: Optional[Mapping[str, object]] = None,
) -> LoggerAdapter:
    """Return a :class:`logging.LoggerAdapter` bound to ``tags`` and ``extra``."""

    configure_logging(level)
    base: Logger = logging.getLogger(name)
    if level is not None:
        base.setLevel(_resolve_level(level))
    bound: MutableMapping[str, object] = {}
    if tags:
        bound["tags"] = tuple(tags)
    if extra:
        bound.update({key: value for key, value in extra.items() if value is not None})
    return LoggerAdapter(base, bound)


def log_with_extra(
    logger: LoggerAdapter | Logger,
    level: int,
    message: str,
    payload: Optional[Mapping[str, object]] = None,
) -> None:
    """
    Emit ``message`` with the adapter's bound extras merged with ``payload``.

    :class:`logging.LoggerAdapter` replaces call-site ``extra`` with its own
    mapping, so the merge happens here instead. Keys that collide with
    :class:`logging.LogRecord` attributes are logged as ``ctx_<key>``.
    """

    merged: dict[str, object] = {}
    if isinstance(logger, LoggerAdapter):
        if isinstance(logger.extra, Mapping):
            merged.update(logger.extra)
        logger = logger.logger
    merged.update({key: value for key, value in (payload or {}).items() if value is not None})
    extras = {(f"ctx_{key}" if key in _RECORD_ATTRS else key): value for key, value in merged.items() if value is not None}
    logger.log(level, message, extra=extras or None)


def log_progress(
    logger: LoggerAdapter | Logger,
    message: str,
    *,
    provider: Optional[str] = None,
    operation: Optional[str] = None,
    level: int = logging.INFO,
    extra: Optional[Mapping[str, object]] = None,
) -> None:
    """Log a service-level step tagged with the provider and operation it belongs to."""

    log_with_extra(logger, level, message, {**(extra or {}), "provider": provider, "operation": operation})
