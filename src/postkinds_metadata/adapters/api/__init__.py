"""
HTTP API clients and adapters for metadata providers.

Each submodule exposes two layers:

* ``Client`` classes wrap low-level HTTP calls with rate limiting, retries and caching.
* ``Adapter`` classes provide :class:`~postkinds_metadata.adapters.base.ProviderAdapter`
  implementations that normalize provider payloads.
"""

from .base import BaseAPIClient, ProviderConfig, RequestDescriptor
from .boardgamegeek import BoardGameGeekAdapter, BoardGameGeekClient
from .errors import (
    APIError,
    ClientError,
    DecodeError,
    ErrorKind,
    ExhaustedRetriesError,
    QueuedError,
    RateLimitError,
    ServerError,
    TransportError,
)
from .foursquare import FoursquareAdapter, FoursquareClient
from .musicbrainz import MusicBrainzAdapter, MusicBrainzClient
from .openlibrary import OpenLibraryAdapter, OpenLibraryClient
from .podcastindex import PodcastIndexAdapter, PodcastIndexClient
from .retry import CallState, RetryPolicy, send_with_retry
from .tmdb import TMDBAdapter, TMDBClient
from .trakt import TraktAdapter, TraktClient

__all__ = [
    "APIError",
    "BaseAPIClient",
    "BoardGameGeekAdapter",
    "BoardGameGeekClient",
    "CallState",
    "ClientError",
    "DecodeError",
    "ErrorKind",
    "ExhaustedRetriesError",
    "FoursquareAdapter",
    "FoursquareClient",
    "MusicBrainzAdapter",
    "MusicBrainzClient",
    "OpenLibraryAdapter",
    "OpenLibraryClient",
    "PodcastIndexAdapter",
    "PodcastIndexClient",
    "ProviderConfig",
    "QueuedError",
    "RateLimitError",
    "RequestDescriptor",
    "RetryPolicy",
    "ServerError",
    "TMDBAdapter",
    "TMDBClient",
    "TraktAdapter",
    "TraktClient",
    "TransportError",
    "send_with_retry",
]
