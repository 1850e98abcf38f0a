"""
Lookup service façade coordinating the registry, adapters and execution context.

The service layer keeps orchestration reusable for both CLI commands and
library callers: adapters are resolved once per provider and share the
context's rate limiter, cache and event sink.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import LoggerAdapter
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..adapters import AdapterError, NormalizedResult, ProviderAdapter, VerificationResult
from ..core.context import ExecutionContext
from ..core.logging import log_progress
from ..core.registry import ProviderDescriptor, ProviderRegistry, ProviderStatus

AdapterFactory = Callable[[str, ExecutionContext, ProviderRegistry], ProviderAdapter]


def _default_factory(provider_id: str, context: ExecutionContext, registry: ProviderRegistry) -> ProviderAdapter:
    from ..cli.adapters import resolve_adapter

    return resolve_adapter(provider_id, context, registry)


@dataclass(slots=True)
class LookupServices:
    """High-level façade used by CLI commands and automations."""

    registry: ProviderRegistry
    context: ExecutionContext
    adapter_factory: AdapterFactory = _default_factory
    logger: LoggerAdapter = field(init=False, repr=False)
    _adapters: Dict[str, ProviderAdapter] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self.logger = self.context.get_logger(self.__class__.__name__)

    def list_enabled_providers(self) -> List[ProviderDescriptor]:
        """Return descriptors for providers enabled in the execution context."""

        return [descriptor for descriptor in self.registry.iter_enabled() if self.context.is_enabled(descriptor.provider_id)]

    def resolve_provider(self, provider_id: str) -> ProviderDescriptor:
        """Fetch a descriptor or raise a descriptive error."""

        descriptor = self.registry.get(provider_id)
        if descriptor is None:
            raise AdapterError(f"Provider '{provider_id}' is not registered.")
        if descriptor.status == ProviderStatus.BLOCKED:
            raise AdapterError(f"Provider '{provider_id}' is blocked: {descriptor.blocked_reason}")
        if not self.context.is_enabled(provider_id):
            raise AdapterError(f"Provider '{provider_id}' is disabled in the current execution context.")
        return descriptor

    def adapter(self, provider_id: str) -> ProviderAdapter:
        """Return the memoised adapter for ``provider_id``."""

        adapter = self._adapters.get(provider_id)
        if adapter is None:
            self.resolve_provider(provider_id)
            adapter = self.adapter_factory(provider_id, self.context, self.registry)
            self._adapters[provider_id] = adapter
        return adapter

    def search(self, provider_id: str, query: str, **filters: Any) -> List[NormalizedResult] | Dict[str, Any]:
        """
        Search one provider.

        Returns the normalized records, or a plan dictionary when the context
        runs in dry-run mode.
        """

        self.resolve_provider(provider_id)
        active_filters = {key: value for key, value in filters.items() if value not in (None, "")}
        if self.context.options.dry_run:
            return self._plan("search", provider_id, query=query, filters=active_filters)
        log_progress(self.logger, "Searching provider", provider=provider_id, operation="search", extra={"query": query})
        return self.adapter(provider_id).search(query, **active_filters)

    def get(self, provider_id: str, item_id: str) -> Optional[NormalizedResult] | Dict[str, Any]:
        """Fetch one item in detailed mode, or return a plan in dry-run mode."""

        self.resolve_provider(provider_id)
        if self.context.options.dry_run:
            return self._plan("get", provider_id, item_id=item_id)
        log_progress(self.logger, "Fetching item", provider=provider_id, operation="get_by_id", extra={"item_id": item_id})
        return self.adapter(provider_id).get_by_id(item_id)

    def search_many(
        self,
        query: str,
        provider_ids: Optional[Sequence[str]] = None,
        *,
        media_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Search several providers and group the results by provider.

        Parameters
        ----------
        query:
            Free-text query.
        provider_ids:
            Providers to query; defaults to every enabled provider whose
            registry entry lists ``media_type`` (or all of them without one).
        media_type:
            Optional normalized type filter applied to the results.

        Providers that are not configured are skipped and reported under
        ``skipped`` instead of raising.
        """

        if provider_ids is None:
            candidates = [
                descriptor.provider_id
                for descriptor in self.list_enabled_providers()
                if media_type is None or media_type in descriptor.media_types
            ]
        else:
            candidates = list(provider_ids)

        results: Dict[str, List[NormalizedResult]] = {}
        skipped: Dict[str, str] = {}
        for provider_id in candidates:
            try:
                self.resolve_provider(provider_id)
            except AdapterError as exc:
                skipped[provider_id] = str(exc)
                continue
            if self.context.options.dry_run:
                results[provider_id] = []
                continue
            adapter = self.adapter(provider_id)
            if not adapter.is_configured():
                skipped[provider_id] = "missing credentials"
                continue
            filters = {"media_type": media_type} if media_type else {}
            records = adapter.search(query, **filters)
            if media_type:
                records = [record for record in records if record.type == media_type]
            results[provider_id] = records

        payload: Dict[str, Any] = {"query": query, "results": results, "skipped": skipped}
        if self.context.options.dry_run:
            payload["note"] = "Dry-run mode enabled; no provider was called."
        return payload

    def verify_provider(self, provider_id: str) -> VerificationResult:
        """Run the adapter's connectivity check; never raises for upstream failures."""

        descriptor = self.registry.get(provider_id)
        if descriptor is None:
            raise AdapterError(f"Provider '{provider_id}' is not registered.")
        if descriptor.status == ProviderStatus.BLOCKED:
            return VerificationResult(
                success=False,
                message=f"Provider '{provider_id}' is blocked: {descriptor.blocked_reason}",
                details={"reason": "blocked"},
            )
        if self.context.options.dry_run:
            return VerificationResult(
                success=True,
                message=f"Dry-run: would verify '{provider_id}' against {descriptor.base_url}.",
                details=self._plan("verify", provider_id),
            )
        return self.adapter(provider_id).verify()

    def clear_cache(self) -> None:
        """Drop every cached payload in the context's cache store."""

        self.context.cache.clear()
        log_progress(self.logger, "Cache cleared", operation="cache-clear")

    def close(self) -> None:
        for adapter in self._adapters.values():
            adapter.client.close()
        self._adapters.clear()

    def _plan(self, operation: str, provider_id: str, **arguments: Any) -> Dict[str, Any]:
        descriptor = self.registry.require(provider_id)
        return {
            "operation": operation,
            "provider": provider_id,
            "base_url": descriptor.base_url,
            "rate_limit": descriptor.rate_limit,
            "cache_ttl": descriptor.cache_ttl,
            "arguments": arguments,
            "note": "Dry-run mode enabled; no request was sent.",
        }
