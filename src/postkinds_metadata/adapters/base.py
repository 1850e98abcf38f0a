"""
Base contract for metadata provider adapters.

An adapter wraps one provider client and turns its raw payloads into
:class:`NormalizedResult` records. Read operations are best-effort: they are
declared with :func:`operation` and :attr:`OperationPolicy.DEGRADE_TO_EMPTY`, so
an upstream failure becomes an error event plus an empty answer. Explicit
connectivity checks propagate.
"""

from __future__ import annotations

import functools
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Iterator, List, Mapping, Optional, TypeVar

from ..core.events import ApiEvent, EventLevel

F = TypeVar("F", bound=Callable[..., Any])


class AdapterError(RuntimeError):
    """Raised when an adapter encounters a non-recoverable error."""


@dataclass(slots=True)
class VerificationResult:
    """
    Structured response returned by adapter verification routines.

    Attributes
    ----------
    success:
        Indicates whether the verification succeeded.
    message:
        Human-readable summary.
    details:
        Optional structured metadata such as a sample title or the missing
        credential names.
    """

    success: bool
    message: str
    details: Optional[Mapping[str, object]] = None


@dataclass(slots=True)
class NormalizedResult:
    """
    Canonical record produced by every adapter.

    ``source`` and ``type`` are mandatory; everything else defaults to empty.
    Provider-specific fields (cast, isbn, feed_url...) live in ``extra`` and are
    flattened next to the envelope by :meth:`to_dict`.
    """

    id: str
    source: str
    type: str
    title: str = ""
    date: str = ""
    image: str = ""
    description: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    _ENVELOPE: ClassVar[tuple[str, ...]] = ("id", "title", "date", "image", "description", "source", "type")

    def __post_init__(self) -> None:
        if not self.source:
            raise ValueError("NormalizedResult.source must be non-empty.")
        if not self.type:
            raise ValueError("NormalizedResult.type must be non-empty.")
        self.id = "" if self.id is None else str(self.id)

    def to_dict(self) -> Dict[str, Any]:
        payload = dict(self.extra)
        payload.update({name: getattr(self, name) for name in self._ENVELOPE})
        return payload

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._ENVELOPE:
            return getattr(self, key)
        return self.extra.get(key, default)

    def __getitem__(self, key: str) -> Any:
        if key in self._ENVELOPE:
            return getattr(self, key)
        return self.extra[key]

    def __contains__(self, key: object) -> bool:
        return key in self._ENVELOPE or key in self.extra

    def __iter__(self) -> Iterator[str]:
        return iter(self.to_dict())


class OperationPolicy(str, Enum):
    """How an adapter operation reacts to upstream failures."""

    PROPAGATE = "propagate"
    DEGRADE_TO_EMPTY = "degrade_to_empty"


def operation(policy: OperationPolicy, *, default: Any = None) -> Callable[[F], F]:
    """
    Declare the error policy of an adapter method.

    With :attr:`OperationPolicy.DEGRADE_TO_EMPTY` any :class:`AdapterError` is
    reported through the adapter's event sink and ``default`` is returned
    instead (called first when it is callable, so ``default=list`` yields a
    fresh list).
    """

    def decorator(func: F) -> F:
        if policy is OperationPolicy.PROPAGATE:
            return func

        @functools.wraps(func)
        def wrapper(self: "ProviderAdapter", *args: Any, **kwargs: Any) -> Any:
            try:
                return func(self, *args, **kwargs)
            except AdapterError as exc:
                self.report_failure(func.__name__, exc)
                return default() if callable(default) else default

        return wrapper  # type: ignore[return-value]

    return decorator


class ProviderAdapter(ABC):
    """
    Normalization contract implemented by every provider adapter.

    Subclasses set ``source_id``, ``docs_url`` and ``default_type`` and hold the
    provider client in ``client``.
    """

    source_id: ClassVar[str] = ""
    docs_url: ClassVar[str] = ""
    default_type: ClassVar[str] = ""

    client: Any

    @abstractmethod
    def search(self, query: str, **filters: Any) -> List[NormalizedResult]:
        """Search the provider and return normalized records."""

    @abstractmethod
    def get_by_id(self, item_id: str) -> Optional[NormalizedResult]:
        """Fetch one item in detailed mode."""

    @abstractmethod
    def normalize_result(self, raw: Mapping[str, Any], *, detailed: bool = False) -> NormalizedResult:
        """Convert a raw payload. Must not raise on missing optional fields."""

    @abstractmethod
    def test_connection(self) -> bool:
        """Issue a cheap authenticated call. Errors propagate."""

    def is_configured(self) -> bool:
        return True

    def verify(self) -> VerificationResult:
        if not self.is_configured():
            return VerificationResult(
                success=False,
                message=f"{self.source_id} is missing credentials.",
                details={"reason": "missing-credentials"},
            )
        try:
            self.test_connection()
        except AdapterError as exc:
            return VerificationResult(success=False, message=f"{self.source_id} verification failed: {exc}")
        return VerificationResult(success=True, message=f"{self.source_id} reachable.")

    def report_failure(self, operation_name: str, exc: AdapterError) -> None:
        events = getattr(self.client, "events", None)
        if events is None:
            return
        context: Dict[str, object] = {"operation": operation_name, "error": exc.__class__.__name__}
        status = getattr(exc, "status", None)
        if status is not None:
            context["status_code"] = status
        events.emit(ApiEvent(level=EventLevel.ERROR, provider=self.source_id, message=str(exc), context=context))

    def require_configured(self) -> None:
        if not self.is_configured():
            raise AdapterError(f"{self.source_id} is not configured; set its credentials in the secrets file.")

    def _result(self, raw_id: Any, *, media_type: Optional[str] = None, **fields: Any) -> NormalizedResult:
        envelope = {name: fields.pop(name) for name in ("title", "date", "image", "description") if name in fields}
        return NormalizedResult(
            id="" if raw_id is None else str(raw_id),
            source=self.source_id,
            type=media_type or self.default_type,
            **{key: ("" if value is None else str(value)) for key, value in envelope.items()},
            extra=fields,
        )


def as_mapping(value: Any) -> Mapping[str, Any]:
    """Return ``value`` when it is a mapping, otherwise an empty dict."""

    return value if isinstance(value, Mapping) else {}


def as_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, tuple):
        return list(value)
    return []


def year_of(value: Any) -> str:
    text = str(value or "")
    return text[:4] if len(text) >= 4 and text[:4].isdigit() else ""
