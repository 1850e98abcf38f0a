"""
Adapter interfaces for metadata providers.

Concrete adapters live in :mod:`postkinds_metadata.adapters.api`, one module per
provider. Each adapter is responsible for a small, deterministic surface that
can be composed by the service layer.
"""

from .base import (
    AdapterError,
    NormalizedResult,
    OperationPolicy,
    ProviderAdapter,
    VerificationResult,
    operation,
)

__all__ = [
    "AdapterError",
    "NormalizedResult",
    "OperationPolicy",
    "ProviderAdapter",
    "VerificationResult",
    "operation",
]
