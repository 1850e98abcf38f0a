"""
Primary Typer application wiring for the metadata lookup CLI.

Commands resolve providers through the packaged registry, share one execution
context (rate limiter, cache, event sink) and print normalized records either
as a compact table or as JSON.
"""

from __future__ import annotations

import json
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import typer

from ..adapters import AdapterError, NormalizedResult
from ..core import CacheBackend, ExecutionContext, ExecutionOptions, configure_logging
from ..core.registry import ProviderDescriptor, ProviderRegistry, ProviderStatus, RegistryLoadError
from ..services import LookupServices
from .adapters import resolve_adapter

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Look up media and place metadata across providers.\n\n"
        "Command groups:\n"
        "- providers: catalogue, describe, verify and audit provider integrations.\n"
        "- search / get: query one provider and print normalized records.\n"
        "- cache: manage cached provider responses."
    ),
)
providers_app = typer.Typer(help="Inspect and validate provider integrations. Includes list, describe, verify and audit commands.")
app.add_typer(providers_app, name="providers")
cache_app = typer.Typer(help="Manage the response cache.")
app.add_typer(cache_app, name="cache")


def _load_registry(registry_file: Optional[Path]) -> ProviderRegistry:
    if registry_file:
        return ProviderRegistry.from_yaml(registry_file)
    with resources.as_file(resources.files("postkinds_metadata.resources") / "providers.yaml") as resolved:
        return ProviderRegistry.from_yaml(resolved)


def _parse_status(status: Optional[str]) -> Optional[ProviderStatus]:
    if status is None:
        return None
    try:
        return ProviderStatus(status.lower())
    except ValueError:
        raise typer.BadParameter(f"Unknown status '{status}'. Expected one of: " f"{', '.join(item.value for item in ProviderStatus)}.") from None


def _parse_filters(values: Optional[List[str]]) -> Dict[str, str]:
    filters: Dict[str, str] = {}
    if not values:
        return filters
    for entry in values:
        if "=" not in entry:
            raise typer.BadParameter(f"Filter '{entry}' must use key=value format.")
        key, value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise typer.BadParameter(f"Filter '{entry}' is missing a key.")
        filters[key] = value
    return filters


def _render_records(records: Sequence[NormalizedResult]) -> None:
    header = f"{'ID':<16} {'Type':<12} {'Date':<12} Title"
    typer.echo(header)
    typer.echo("-" * len(header))
    for record in records:
        title = record.title.replace("\n", " ")
        typer.echo(f"{record.id:<16} {record.type:<12} {record.date[:10]:<12} {title}")


@app.callback(invoke_without_command=False)
def main(
    ctx: typer.Context,
    registry_file: Optional[Path] = typer.Option(
        None,
        "--registry",
        "-r",
        help="Override provider registry YAML file.",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    cache_dir: Optional[Path] = typer.Option(
        None,
        "--cache-dir",
        help="Override cache directory used by the file cache.",
        file_okay=False,
    ),
    cache_backend: CacheBackend = typer.Option(CacheBackend.MEMORY, "--cache-backend", help="Where provider responses are cached."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Emit execution plans without calling providers."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (DEBUG, INFO, WARNING...)."),
) -> None:
    """
    Configure global execution context.

    The callback stores the registry and execution context in Typer's state so
    child commands can retrieve them via :class:`typer.Context`.
    """

    if log_level:
        configure_logging(log_level, force=True)

    try:
        registry = _load_registry(registry_file)
    except RegistryLoadError as exc:
        typer.echo(f"Failed to load registry: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    options = ExecutionOptions(dry_run=dry_run, cache_backend=cache_backend)
    context = ExecutionContext.build_default(cache_dir=cache_dir, options=options)
    context.enabled_providers.update(entry.provider_id for entry in registry.iter_enabled())
    state = ctx.ensure_object(dict)
    state["registry"] = registry
    state["context"] = context


def _require_registry(ctx: typer.Context) -> ProviderRegistry:
    state = ctx.ensure_object(dict)
    registry = state.get("registry")
    if not isinstance(registry, ProviderRegistry):
        raise typer.Exit(code=2)
    return registry


def _require_context(ctx: typer.Context) -> ExecutionContext:
    state = ctx.ensure_object(dict)
    context = state.get("context")
    if not isinstance(context, ExecutionContext):
        raise typer.Exit(code=2)
    return context


def _services(ctx: typer.Context) -> LookupServices:
    return LookupServices(registry=_require_registry(ctx), context=_require_context(ctx), adapter_factory=resolve_adapter)


@providers_app.command("list")
def providers_list(
    ctx: typer.Context,
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by lifecycle status."),
    show_blocked: bool = typer.Option(False, "--show-blocked", help="Include blocked providers in the list."),
) -> None:
    """List registered providers with basic metadata."""

    registry = _require_registry(ctx)
    status_filter = _parse_status(status)
    entries = registry.list(status=status_filter) if status_filter else list(registry.iter_enabled(allow_blocked=show_blocked))
    if not entries:
        typer.echo("No providers match the requested filters.")
        raise typer.Exit(code=0)

    header = f"{'ID':<14} {'Status':<11} {'Auth':<9} {'Types':<28} Name"
    typer.echo(header)
    typer.echo("-" * len(header))
    for entry in entries:
        types = ",".join(entry.media_types)
        typer.echo(f"{entry.provider_id:<14} {entry.status.value:<11} {entry.authentication:<9} {types:<28} {entry.name}")


@providers_app.command("describe")
def providers_describe(
    ctx: typer.Context,
    provider_id: str = typer.Argument(..., help="Identifier of the provider."),
    output_json: bool = typer.Option(False, "--json", help="Emit descriptor in JSON format."),
) -> None:
    """Show detailed metadata for a specific provider."""

    registry = _require_registry(ctx)
    descriptor = registry.get(provider_id)
    if not descriptor:
        typer.echo(f"Provider '{provider_id}' is not registered.", err=True)
        raise typer.Exit(code=1)

    if output_json:
        typer.echo(descriptor.to_json())
        return

    typer.echo(f"ID: {descriptor.provider_id}")
    typer.echo(f"Name: {descriptor.name}")
    typer.echo(f"Status: {descriptor.status.value}")
    if descriptor.blocked_reason:
        typer.echo(f"Blocked Reason: {descriptor.blocked_reason}")
    typer.echo(f"Base URL: {descriptor.base_url}")
    typer.echo(f"Types: {', '.join(descriptor.media_types) or 'N/A'}")
    typer.echo(f"Rate Limit: {descriptor.rate_limit} req/s")
    typer.echo(f"Cache TTL: {descriptor.cache_ttl}s")
    typer.echo(f"Timeout: {descriptor.timeout}s")
    typer.echo(f"Max Retries: {descriptor.max_retries}")
    typer.echo(f"Authentication: {descriptor.authentication}")
    typer.echo(f"Requires Credentials: {descriptor.requires_credentials}")
    if descriptor.credential_fields:
        typer.echo(f"Credential Fields: {', '.join(descriptor.credential_fields)}")
    if descriptor.queued_status:
        typer.echo("Queued Responses: yes (202 handled)")
    if descriptor.docs_url:
        typer.echo(f"Docs: {descriptor.docs_url}")
    if descriptor.description:
        typer.echo(f"Description: {descriptor.description}")


@providers_app.command("verify")
def providers_verify(
    ctx: typer.Context,
    provider_id: str = typer.Argument(..., help="Identifier of the provider."),
) -> None:
    """Run a cheap authenticated call against a provider."""

    services = _services(ctx)
    try:
        result = services.verify_provider(provider_id)
    except AdapterError as exc:
        typer.echo(f"Verification failed: {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(result.message)
    if result.details:
        typer.echo(f"Details: {json.dumps(result.details, ensure_ascii=False)}")
    if not result.success:
        raise typer.Exit(code=1)


@providers_app.command("audit")
def providers_audit(
    ctx: typer.Context,
    show_blocked: bool = typer.Option(False, "--show-blocked", help="Include blocked providers in the audit results."),
    output_json: bool = typer.Option(False, "--json", help="Emit the audit report in JSON format."),
    fail_on_error: bool = typer.Option(True, "--fail-on-error/--no-fail-on-error", help="Control whether failures set a non-zero exit code."),
) -> None:
    """
    Run verification across all registered providers and emit a summary report.
    """

    registry = _require_registry(ctx)
    services = _services(ctx)

    descriptors: List[ProviderDescriptor] = list(registry.iter_enabled(allow_blocked=show_blocked))
    if not descriptors:
        typer.echo("No providers available for audit.")
        raise typer.Exit(code=0)

    records: List[Dict[str, Any]] = []
    failures = 0
    for descriptor in descriptors:
        record: Dict[str, Any] = {
            "id": descriptor.provider_id,
            "name": descriptor.name,
            "registry_status": descriptor.status.value,
            "requires_credentials": descriptor.requires_credentials,
            "success": False,
            "message": "",
            "details": None,
        }
        try:
            verification = services.verify_provider(descriptor.provider_id)
        except AdapterError as exc:
            record["message"] = f"Adapter error: {exc}"
            record["details"] = {"reason": "adapter-error"}
        else:
            record["success"] = verification.success
            record["message"] = verification.message
            if verification.details is not None:
                record["details"] = dict(verification.details)

        if not record["success"]:
            failures += 1
        records.append(record)

    if output_json:
        typer.echo(json.dumps({"results": records}, ensure_ascii=False, indent=2))
    else:
        header = f"{'ID':<14} {'Registry':<11} {'Result':<7} Message"
        typer.echo(header)
        typer.echo("-" * len(header))
        for record in records:
            message = str(record["message"]).replace("\n", " ").strip()
            result_str = "pass" if record["success"] else "fail"
            typer.echo(f"{record['id']:<14} {record['registry_status']:<11} {result_str:<7} {message}")
        passed = len(records) - failures
        typer.echo(f"Audit complete: {len(records)} provider(s), {passed} passed, {failures} failed.")

    if failures and fail_on_error:
        raise typer.Exit(code=1)


@app.command("search")
def search(
    ctx: typer.Context,
    provider_id: str = typer.Argument(..., help="Identifier of the provider."),
    query: str = typer.Argument(..., help="Free-text query."),
    media_type: Optional[str] = typer.Option(None, "--type", "-t", help="Restrict results to a normalized type (movie, tv, book...)."),
    filters: Optional[List[str]] = typer.Option(
        None,
        "--filter",
        "-f",
        help="Provider-specific filter in the form key=value (e.g. year=1999, near=Paris). Can be repeated.",
    ),
    output_json: bool = typer.Option(False, "--json", help="Emit normalized records as JSON."),
) -> None:
    """Search one provider and print normalized records."""

    services = _services(ctx)
    extra_filters = _parse_filters(filters)
    if media_type:
        extra_filters["media_type"] = media_type
    try:
        outcome = services.search(provider_id, query, **extra_filters)
    except AdapterError as exc:
        typer.echo(f"Search failed: {exc}", err=True)
        raise typer.Exit(code=1)

    if isinstance(outcome, dict):
        typer.echo(json.dumps(outcome, ensure_ascii=False, indent=2))
        return

    if output_json:
        typer.echo(json.dumps([record.to_dict() for record in outcome], ensure_ascii=False, indent=2))
        return

    if not outcome:
        typer.echo("No results.")
        return
    _render_records(outcome)


@app.command("get")
def get(
    ctx: typer.Context,
    provider_id: str = typer.Argument(..., help="Identifier of the provider."),
    item_id: str = typer.Argument(..., help="Provider item identifier (e.g. movie:603, OL45883W, 9780140328721)."),
    output_json: bool = typer.Option(False, "--json", help="Emit the normalized record as JSON."),
) -> None:
    """Fetch one item in detailed mode."""

    services = _services(ctx)
    try:
        outcome = services.get(provider_id, item_id)
    except AdapterError as exc:
        typer.echo(f"Lookup failed: {exc}", err=True)
        raise typer.Exit(code=1)

    if outcome is None:
        typer.echo(f"No item '{item_id}' found at {provider_id}.", err=True)
        raise typer.Exit(code=1)

    if isinstance(outcome, dict):
        typer.echo(json.dumps(outcome, ensure_ascii=False, indent=2))
        return

    if output_json:
        typer.echo(json.dumps(outcome.to_dict(), ensure_ascii=False, indent=2))
        return

    typer.echo(f"{outcome.title} ({outcome.type}, {outcome.source}:{outcome.id})")
    if outcome.date:
        typer.echo(f"Date: {outcome.date}")
    if outcome.image:
        typer.echo(f"Image: {outcome.image}")
    if outcome.description:
        typer.echo(outcome.description.strip())


@cache_app.command("clear")
def cache_clear(ctx: typer.Context) -> None:
    """Remove every cached provider response."""

    services = _services(ctx)
    if services.context.options.dry_run:
        typer.echo("Dry-run: would clear the response cache.")
        return
    services.clear_cache()
    typer.echo("Cache cleared.")


if __name__ == "__main__":  # pragma: no cover
    app()
