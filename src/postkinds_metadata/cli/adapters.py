"""
Helpers for resolving provider adapters in CLI contexts.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple, Type

import httpx

from ..adapters import AdapterError, ProviderAdapter
from ..adapters.api import (
    BaseAPIClient,
    BoardGameGeekAdapter,
    BoardGameGeekClient,
    FoursquareAdapter,
    FoursquareClient,
    MusicBrainzAdapter,
    MusicBrainzClient,
    OpenLibraryAdapter,
    OpenLibraryClient,
    PodcastIndexAdapter,
    PodcastIndexClient,
    TMDBAdapter,
    TMDBClient,
    TraktAdapter,
    TraktClient,
)
from ..core.context import ExecutionContext
from ..core.registry import ProviderRegistry

PROVIDER_CLASSES: Dict[str, Tuple[Type[BaseAPIClient], Type[ProviderAdapter]]] = {
    "tmdb": (TMDBClient, TMDBAdapter),
    "trakt": (TraktClient, TraktAdapter),
    "openlibrary": (OpenLibraryClient, OpenLibraryAdapter),
    "bgg": (BoardGameGeekClient, BoardGameGeekAdapter),
    "podcastindex": (PodcastIndexClient, PodcastIndexAdapter),
    "foursquare": (FoursquareClient, FoursquareAdapter),
    "musicbrainz": (MusicBrainzClient, MusicBrainzAdapter),
}


def resolve_adapter(
    provider_id: str,
    context: ExecutionContext,
    registry: ProviderRegistry,
    *,
    http_client: Optional[httpx.Client] = None,
) -> ProviderAdapter:
    """
    Build the client and adapter for a registry provider.

    The client shares the context's rate limiter, cache and event sink, so every
    adapter resolved from one context throttles and caches against the same
    state.
    """

    classes = PROVIDER_CLASSES.get(provider_id)
    if classes is None:
        raise AdapterError(f"No adapter is available for provider '{provider_id}'.")
    try:
        descriptor = registry.require(provider_id)
    except KeyError as exc:
        raise AdapterError(str(exc)) from exc

    client_cls, adapter_cls = classes
    options: Dict[str, Any] = {
        "rate_limiter": context.rate_limiter,
        "cache": context.cache,
        "events": context.events,
        "queued_status": descriptor.queued_status,
    }
    if http_client is not None:
        options["http_client"] = http_client
    client = client_cls(registry.build_config(provider_id, context.secrets), **options)
    return adapter_cls(client=client)
