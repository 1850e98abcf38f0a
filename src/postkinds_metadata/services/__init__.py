"""
Service-layer helpers orchestrating adapters, registries, and execution context.
"""

from .lookup import LookupServices

__all__ = ["LookupServices"]
