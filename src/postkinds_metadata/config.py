"""
Secret management helpers for provider credentials.

Secrets are loaded from ``.secrets/secret.toml`` by default. The lookup order is:

1. Explicit ``POSTKINDS_SECRETS_PATH`` environment variable.
2. Project-relative ``.secrets/secret.toml`` (both from CWD and the package root).
3. Project-relative ``.secrets/secrets.toml``.
4. Fallback to ``.secrets/secrets.example.toml`` for scaffolding values.

Each provider reads its own table, e.g.::

    [tmdb]
    access_token = "..."

    [trakt]
    client_id = "..."
    client_secret = "..."
    rate_limit = 0.5

Call :func:`load_secrets` to retrieve a :class:`SecretsBundle`.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

SECRETS_ENV = "POSTKINDS_SECRETS_PATH"


@dataclass(slots=True)
class SecretsBundle:
    """Lightweight container for parsed secret values."""

    source_path: Optional[Path] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def provider_section(self, name: str) -> Dict[str, Any]:
        """Return the ``[name]`` table, or an empty dict when absent or malformed."""

        section = self.data.get(name)
        return dict(section) if isinstance(section, Mapping) else {}

    def get_option(self, name: str, default: Any = None) -> Any:
        """
        Look up a value by dotted path.

        ``get_option("tmdb.api_key")`` reads ``api_key`` from the ``[tmdb]`` table.
        """

        current: Any = self.data
        for part in name.split("."):
            if not isinstance(current, Mapping) or part not in current:
                return default
            current = current[part]
        return current


def _discover_project_root() -> Optional[Path]:
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / "pyproject.toml").is_file():
            return parent
    return None


def _candidate_paths() -> Iterable[Path]:
    env_override = os.getenv(SECRETS_ENV)
    if env_override:
        yield Path(env_override).expanduser()

    search_roots = [Path.cwd()]
    project_root = _discover_project_root()
    if project_root and project_root not in search_roots:
        search_roots.append(project_root)

    seen: set[Path] = set()
    for base in search_roots:
        for filename in ("secret.toml", "secrets.toml", "secrets.example.toml"):
            candidate = base / ".secrets" / filename
            if candidate not in seen:
                seen.add(candidate)
                yield candidate


def _load_toml(path: Path) -> Dict[str, Any]:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def load_secrets(strict: bool = False) -> SecretsBundle:
    """
    Attempt to load secrets from the configured locations.

    Parameters
    ----------
    strict:
        When ``True`` the function raises ``FileNotFoundError`` if no secrets file is
        discovered. Defaults to ``False`` so providers without credentials keep working.
    """

    for path in _candidate_paths():
        if path.is_file():
            return SecretsBundle(source_path=path, data=_load_toml(path))

    if strict:
        raise FileNotFoundError(f"No secrets file found. Configure {SECRETS_ENV} or .secrets/secret.toml.")

    return SecretsBundle()
