from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from postkinds_metadata.adapters import AdapterError, NormalizedResult, VerificationResult
from postkinds_metadata.cli.main import app


@pytest.fixture(autouse=True)
def isolated_secrets(tmp_path, monkeypatch):
    monkeypatch.setenv("POSTKINDS_SECRETS_PATH", str(tmp_path / "absent.toml"))
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("postkinds_metadata.config._discover_project_root", lambda: None)


def invoke(cli_runner: CliRunner, registry_file, tmp_path, args: list[str]):
    base = ["--registry", str(registry_file), "--cache-dir", str(tmp_path / "cache")]
    return cli_runner.invoke(app, base + args)


def _stub_adapter(records=None, item=None) -> MagicMock:
    adapter = MagicMock()
    adapter.search.return_value = records or []
    adapter.get_by_id.return_value = item
    return adapter


def test_providers_list(cli_runner, registry_file, tmp_path):
    result = invoke(cli_runner, registry_file, tmp_path, ["providers", "list"])

    assert result.exit_code == 0
    assert "tmdb" in result.stdout
    assert "foursquare" in result.stdout
    assert "boardgame" in result.stdout


def test_providers_list_rejects_unknown_status(cli_runner, registry_file, tmp_path):
    result = invoke(cli_runner, registry_file, tmp_path, ["providers", "list", "--status", "retired"])

    assert result.exit_code != 0


def test_providers_describe(cli_runner, registry_file, tmp_path):
    result = invoke(cli_runner, registry_file, tmp_path, ["providers", "describe", "bgg"])

    assert result.exit_code == 0
    assert "ID: bgg" in result.stdout
    assert "Queued Responses: yes" in result.stdout
    assert "Credential Fields: api_token" in result.stdout


def test_providers_describe_json(cli_runner, registry_file, tmp_path):
    result = invoke(cli_runner, registry_file, tmp_path, ["providers", "describe", "openlibrary", "--json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["id"] == "openlibrary"
    assert payload["requires_credentials"] is False


def test_providers_describe_unknown(cli_runner, registry_file, tmp_path):
    result = invoke(cli_runner, registry_file, tmp_path, ["providers", "describe", "imdb"])

    assert result.exit_code == 1


def test_providers_verify_success(cli_runner, registry_file, tmp_path):
    with patch(
        "postkinds_metadata.cli.main.LookupServices.verify_provider",
        return_value=VerificationResult(success=True, message="tmdb reachable.", details={"sample": "Alien"}),
    ):
        result = invoke(cli_runner, registry_file, tmp_path, ["providers", "verify", "tmdb"])

    assert result.exit_code == 0
    assert "tmdb reachable." in result.stdout
    assert '"sample": "Alien"' in result.stdout


def test_providers_verify_reports_failure(cli_runner, registry_file, tmp_path):
    with patch(
        "postkinds_metadata.cli.main.LookupServices.verify_provider",
        return_value=VerificationResult(success=False, message="trakt is missing credentials.", details={"reason": "missing-credentials"}),
    ):
        result = invoke(cli_runner, registry_file, tmp_path, ["providers", "verify", "trakt"])

    assert result.exit_code == 1
    assert "missing credentials" in result.stdout


def test_providers_verify_missing_credentials_without_stub(cli_runner, registry_file, tmp_path):
    result = invoke(cli_runner, registry_file, tmp_path, ["providers", "verify", "foursquare"])

    assert result.exit_code == 1
    assert "foursquare is missing credentials." in result.stdout


def test_providers_audit_summary(cli_runner, registry_file, tmp_path):
    with patch(
        "postkinds_metadata.cli.main.LookupServices.verify_provider",
        return_value=VerificationResult(success=True, message="reachable."),
    ):
        result = invoke(cli_runner, registry_file, tmp_path, ["providers", "audit"])

    assert result.exit_code == 0
    assert "Audit complete: 7 provider(s), 7 passed, 0 failed." in result.stdout


def test_providers_audit_json_counts_adapter_errors(cli_runner, registry_file, tmp_path):
    with patch(
        "postkinds_metadata.cli.main.LookupServices.verify_provider",
        side_effect=AdapterError("boom"),
    ):
        result = invoke(cli_runner, registry_file, tmp_path, ["providers", "audit", "--json", "--no-fail-on-error"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert len(payload["results"]) == 7
    assert all(entry["details"] == {"reason": "adapter-error"} for entry in payload["results"])


def test_search_dry_run_prints_plan(cli_runner, registry_file, tmp_path):
    result = invoke(
        cli_runner,
        registry_file,
        tmp_path,
        ["--dry-run", "search", "foursquare", "coffee", "--filter", "near=Paris", "--type", "venue"],
    )

    assert result.exit_code == 0
    plan = json.loads(result.stdout)
    assert plan["operation"] == "search"
    assert plan["provider"] == "foursquare"
    assert plan["arguments"]["filters"] == {"near": "Paris", "media_type": "venue"}


def test_search_renders_table(cli_runner, registry_file, tmp_path):
    record = NormalizedResult(id="603", source="tmdb", type="movie", title="The Matrix", date="1999-03-30")
    adapter = _stub_adapter(records=[record])
    with patch("postkinds_metadata.cli.main.resolve_adapter", return_value=adapter):
        result = invoke(cli_runner, registry_file, tmp_path, ["search", "tmdb", "matrix", "-f", "year=1999"])

    assert result.exit_code == 0
    assert "The Matrix" in result.stdout
    assert "1999-03-30" in result.stdout
    adapter.search.assert_called_once_with("matrix", year="1999")


def test_search_json_output(cli_runner, registry_file, tmp_path):
    record = NormalizedResult(id="OL1W", source="openlibrary", type="book", title="Dune", extra={"authors": ["Frank Herbert"]})
    with patch("postkinds_metadata.cli.main.resolve_adapter", return_value=_stub_adapter(records=[record])):
        result = invoke(cli_runner, registry_file, tmp_path, ["search", "openlibrary", "dune", "--json"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload[0]["title"] == "Dune"
    assert payload[0]["authors"] == ["Frank Herbert"]


def test_search_without_results(cli_runner, registry_file, tmp_path):
    with patch("postkinds_metadata.cli.main.resolve_adapter", return_value=_stub_adapter()):
        result = invoke(cli_runner, registry_file, tmp_path, ["search", "openlibrary", "zzzz"])

    assert result.exit_code == 0
    assert "No results." in result.stdout


def test_search_rejects_malformed_filter(cli_runner, registry_file, tmp_path):
    result = invoke(cli_runner, registry_file, tmp_path, ["search", "tmdb", "x", "--filter", "year"])

    assert result.exit_code != 0


def test_search_unknown_provider_fails(cli_runner, registry_file, tmp_path):
    result = invoke(cli_runner, registry_file, tmp_path, ["search", "imdb", "x"])

    assert result.exit_code == 1


def test_get_prints_item(cli_runner, registry_file, tmp_path):
    item = NormalizedResult(id="13", source="bgg", type="boardgame", title="CATAN", date="1995", description="Trade and build.")
    with patch("postkinds_metadata.cli.main.resolve_adapter", return_value=_stub_adapter(item=item)):
        result = invoke(cli_runner, registry_file, tmp_path, ["get", "bgg", "13"])

    assert result.exit_code == 0
    assert "CATAN (boardgame, bgg:13)" in result.stdout
    assert "Trade and build." in result.stdout


def test_get_missing_item_exits_non_zero(cli_runner, registry_file, tmp_path):
    with patch("postkinds_metadata.cli.main.resolve_adapter", return_value=_stub_adapter()):
        result = invoke(cli_runner, registry_file, tmp_path, ["get", "bgg", "0"])

    assert result.exit_code == 1


def test_get_dry_run(cli_runner, registry_file, tmp_path):
    result = invoke(cli_runner, registry_file, tmp_path, ["--dry-run", "get", "tmdb", "movie:603"])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["arguments"] == {"item_id": "movie:603"}


def test_cache_clear(cli_runner, registry_file, tmp_path):
    result = invoke(cli_runner, registry_file, tmp_path, ["cache", "clear"])
    assert result.exit_code == 0
    assert "Cache cleared." in result.stdout

    dry = invoke(cli_runner, registry_file, tmp_path, ["--dry-run", "cache", "clear"])
    assert "Dry-run: would clear the response cache." in dry.stdout


def test_invalid_registry_exits(cli_runner, tmp_path):
    broken = tmp_path / "providers.yaml"
    broken.write_text("not: a list\n", encoding="utf-8")

    result = cli_runner.invoke(app, ["--registry", str(broken), "providers", "list"])

    assert result.exit_code == 1
