"""
Provider registry declarations and helpers.

The registry is the authoritative catalogue of metadata providers the CLI can
talk to. Each entry captures human-authored metadata (status, documentation
references, credential requirements) next to the operational constants the
HTTP pipeline needs: base URL, request rate, cache lifetime, timeout and retry
budget.

Descriptors load from YAML so constants can be tuned without touching code;
per-provider secrets may override the numeric settings at runtime.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, MutableMapping, Optional, Sequence

import yaml

from ..adapters.api.base import DEFAULT_CACHE_TTL, DEFAULT_MAX_RETRIES, DEFAULT_RATE_LIMIT, DEFAULT_TIMEOUT, ProviderConfig
from ..config import SecretsBundle

_OVERRIDABLE = {
    "rate_limit": "requests_per_second",
    "cache_ttl": "cache_ttl",
    "timeout": "timeout",
    "max_retries": "max_retries",
}


class RegistryLoadError(RuntimeError):
    """Raised when a registry YAML file cannot be parsed or validated."""


class ProviderStatus(str, Enum):
    """Lifecycle state for individual providers."""

    ACTIVE = "active"
    TRIAL = "trial"
    DEPRECATED = "deprecated"
    BLOCKED = "blocked"


@dataclass(slots=True)
class ProviderDescriptor:
    """
    Metadata and operational constants for a single provider.

    Parameters
    ----------
    provider_id:
        Unique identifier used across the application (``tmdb``, ``bgg``...).
    name:
        Human-friendly display name.
    base_url:
        Root URL handed to the provider client.
    media_types:
        Normalized ``type`` values the provider produces.
    rate_limit:
        Requests per second. ``0`` disables throttling.
    cache_ttl:
        Default cache lifetime in seconds.
    timeout:
        Per-request timeout in seconds.
    max_retries:
        Total attempts per request.
    authentication:
        Description of credential requirements (``none``, ``api-key``,
        ``bearer``, ``oauth``, ``signed``).
    requires_credentials:
        Whether the provider refuses anonymous calls.
    credential_fields:
        Keys read from the provider's secrets table.
    queued_status:
        Whether the provider answers ``202`` while preparing a response.
    status:
        Lifecycle status. ``blocked`` entries must include ``blocked_reason``.
    blocked_reason:
        Additional context when a provider is deliberately disabled.
    docs_url:
        Upstream API documentation.
    description:
        Short summary.
    """

    provider_id: str
    name: str
    base_url: str
    media_types: Sequence[str] = field(default_factory=tuple)
    rate_limit: float = DEFAULT_RATE_LIMIT
    cache_ttl: int = DEFAULT_CACHE_TTL
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    authentication: str = "none"
    requires_credentials: bool = False
    credential_fields: Sequence[str] = field(default_factory=tuple)
    queued_status: bool = False
    status: ProviderStatus = ProviderStatus.ACTIVE
    blocked_reason: Optional[str] = None
    docs_url: Optional[str] = None
    description: str = ""

    def validate(self) -> None:
        """Validate internal consistency of the descriptor."""

        if not self.provider_id or not self.provider_id.isidentifier():
            raise RegistryLoadError(f"Provider '{self.provider_id}' must be a valid identifier (letters, digits, underscore).")
        if self.status == ProviderStatus.BLOCKED and not self.blocked_reason:
            raise RegistryLoadError(f"Provider '{self.provider_id}' is blocked but missing a blocked_reason.")
        if not self.base_url.startswith(("http://", "https://")):
            raise RegistryLoadError(f"Provider '{self.provider_id}' needs an absolute http(s) base_url.")
        if self.rate_limit < 0:
            raise RegistryLoadError(f"Provider '{self.provider_id}' has a negative rate_limit.")
        if self.max_retries < 1:
            raise RegistryLoadError(f"Provider '{self.provider_id}' must allow at least one attempt.")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.provider_id,
            "name": self.name,
            "base_url": self.base_url,
            "media_types": list(self.media_types),
            "rate_limit": self.rate_limit,
            "cache_ttl": self.cache_ttl,
            "timeout": self.timeout,
            "max_retries": self.max_retries,
            "authentication": self.authentication,
            "requires_credentials": self.requires_credentials,
            "credential_fields": list(self.credential_fields),
            "queued_status": self.queued_status,
            "status": self.status.value,
            "blocked_reason": self.blocked_reason,
            "docs_url": self.docs_url,
            "description": self.description,
        }

    def to_json(self) -> str:
        """Return a JSON representation useful for CLI output."""

        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2)

    def credentials_from(self, secrets: SecretsBundle) -> Dict[str, Any]:
        section = secrets.provider_section(self.provider_id)
        return {key: section[key] for key in self.credential_fields if key in section}


class ProviderRegistry:
    """In-memory catalogue of :class:`ProviderDescriptor` entries."""

    def __init__(self) -> None:
        self._entries: MutableMapping[str, ProviderDescriptor] = {}

    def register(self, descriptor: ProviderDescriptor) -> None:
        """Register or overwrite a descriptor in the catalogue."""

        descriptor.validate()
        self._entries[descriptor.provider_id] = descriptor

    def get(self, provider_id: str) -> Optional[ProviderDescriptor]:
        return self._entries.get(provider_id)

    def require(self, provider_id: str) -> ProviderDescriptor:
        """Retrieve a descriptor or raise an informative error."""

        descriptor = self.get(provider_id)
        if descriptor is None:
            raise KeyError(f"Provider '{provider_id}' is not registered.")
        return descriptor

    def list(self, *, status: Optional[ProviderStatus] = None) -> List[ProviderDescriptor]:
        """Return registered descriptors optionally filtered by status."""

        items = self._entries.values()
        if status:
            return [item for item in items if item.status == status]
        return list(items)

    def iter_enabled(self, *, allow_blocked: bool = False) -> Iterator[ProviderDescriptor]:
        """
        Iterate enabled descriptors.

        Parameters
        ----------
        allow_blocked:
            When ``True`` blocked entries are included. Used by the audit command.
        """

        for descriptor in self._entries.values():
            if descriptor.status == ProviderStatus.BLOCKED and not allow_blocked:
                continue
            yield descriptor

    def build_config(self, provider_id: str, secrets: Optional[SecretsBundle] = None) -> ProviderConfig:
        """
        Produce the immutable client configuration for ``provider_id``.

        Numeric settings in the provider's secrets table (``rate_limit``,
        ``cache_ttl``, ``timeout``, ``max_retries``) override the registry values.
        """

        descriptor = self.require(provider_id)
        bundle = secrets or SecretsBundle()
        section = bundle.provider_section(provider_id)
        settings: Dict[str, Any] = {
            "requests_per_second": descriptor.rate_limit,
            "cache_ttl": descriptor.cache_ttl,
            "timeout": descriptor.timeout,
            "max_retries": descriptor.max_retries,
        }
        for key, target in _OVERRIDABLE.items():
            if key in section:
                settings[target] = _coerce_number(section[key], target, provider_id)
        return ProviderConfig(
            name=descriptor.provider_id,
            base_url=section.get("base_url") or descriptor.base_url,
            credentials=descriptor.credentials_from(bundle),
            **settings,
        )

    @classmethod
    def from_yaml(cls, path: Path | str) -> "ProviderRegistry":
        """Load descriptors from a YAML document."""

        location = Path(path)
        if not location.exists():
            raise RegistryLoadError(f"Registry file '{location}' does not exist.")

        try:
            with location.open("r", encoding="utf-8") as handle:
                payload = yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise RegistryLoadError(f"Failed to parse '{location}': {exc}") from exc

        if not isinstance(payload, list):
            raise RegistryLoadError(f"Registry file '{location}' must contain a list of providers.")

        registry = cls()
        for entry in payload:
            registry.register(cls._descriptor_from_payload(entry, origin=location))
        return registry

    @staticmethod
    def _descriptor_from_payload(entry: Mapping[str, object], *, origin: Path) -> ProviderDescriptor:
        """Convert a YAML mapping into a descriptor instance."""

        if not isinstance(entry, dict):
            raise RegistryLoadError(f"Invalid entry in '{origin}': expected mapping, got {type(entry)!r}")

        try:
            descriptor = ProviderDescriptor(
                provider_id=str(entry["id"]),
                name=str(entry.get("name", entry["id"])),
                base_url=str(entry["base_url"]),
                media_types=tuple(_ensure_list(entry.get("media_types"))),
                rate_limit=float(entry.get("rate_limit", DEFAULT_RATE_LIMIT)),
                cache_ttl=int(entry.get("cache_ttl", DEFAULT_CACHE_TTL)),
                timeout=float(entry.get("timeout", DEFAULT_TIMEOUT)),
                max_retries=int(entry.get("max_retries", DEFAULT_MAX_RETRIES)),
                authentication=str(entry.get("authentication", "none")),
                requires_credentials=bool(entry.get("requires_credentials", False)),
                credential_fields=tuple(_ensure_list(entry.get("credential_fields"))),
                queued_status=bool(entry.get("queued_status", False)),
                status=ProviderStatus(str(entry.get("status", ProviderStatus.ACTIVE.value))),
                blocked_reason=_optional_str(entry.get("blocked_reason")),
                docs_url=_optional_str(entry.get("docs_url")),
                description=str(entry.get("description", "")).strip(),
            )
        except KeyError as exc:
            raise RegistryLoadError(f"Missing required key {exc!s} in '{origin}'.") from exc
        except (TypeError, ValueError) as exc:
            raise RegistryLoadError(f"Invalid field in '{origin}': {exc}") from exc

        descriptor.validate()
        return descriptor


def _coerce_number(value: Any, target: str, provider_id: str) -> float | int:
    try:
        return int(value) if target == "max_retries" else float(value)
    except (TypeError, ValueError) as exc:
        raise RegistryLoadError(f"Secret override '{target}' for '{provider_id}' must be numeric, got {value!r}.") from exc


def _ensure_list(value: object | None) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(item) for item in value]
    return [str(value)]


def _optional_str(value: object | None) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
