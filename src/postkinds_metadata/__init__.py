"""
Resilient clients for media and place metadata providers.

Every provider client shares one HTTP pipeline: a process-wide rate limiter,
a retry engine with exponential backoff, an expiring response cache and
structured error events. Adapters turn provider payloads into
:class:`~postkinds_metadata.adapters.base.NormalizedResult` records.

Import ``LookupServices`` for the main developer-facing surface.
"""

from .adapters import AdapterError, NormalizedResult, ProviderAdapter
from .adapters.api import APIError, BaseAPIClient, ProviderConfig
from .core.registry import ProviderRegistry
from .services import LookupServices

__version__ = "0.1.0"

__all__ = [
    "APIError",
    "AdapterError",
    "BaseAPIClient",
    "LookupServices",
    "NormalizedResult",
    "ProviderAdapter",
    "ProviderConfig",
    "ProviderRegistry",
    "__version__",
]
