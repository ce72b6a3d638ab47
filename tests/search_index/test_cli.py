"""Command-line tests driven through Typer's runner."""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from FundCatalog.SearchIndex.cli import app

runner = CliRunner()


def _json(result) -> dict:
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


def test_search_from_source(catalog_path: Path) -> None:
    result = runner.invoke(app, ["search", "hdfc", "--source", str(catalog_path), "--category", "Mid Cap"])

    body = _json(result)
    assert [fund["schemeCode"] for fund in body["funds"]] == [2, 3]
    assert body["total"] == 2


def test_search_requires_exactly_one_catalog(catalog_path: Path, tmp_path: Path) -> None:
    neither = runner.invoke(app, ["search", "hdfc"])
    both = runner.invoke(app, ["search", "hdfc", "--source", str(catalog_path), "--state-dir", str(tmp_path)])

    assert neither.exit_code == 1
    assert both.exit_code == 1


def test_checkpointed_build_then_search(catalog_path: Path, tmp_path: Path) -> None:
    state_dir = tmp_path / "state"

    first = _json(runner.invoke(app, ["load-batch", str(catalog_path), str(state_dir), "--batch-size", "4"]))
    assert (first["processed"], first["state"], first["batch"]) == (4, "running", [1, 2, 3, 4])

    second = _json(runner.invoke(app, ["load-batch", str(catalog_path), str(state_dir), "--batch-size", "10"]))
    assert (second["processed"], second["isComplete"], second["total"]) == (9, True, 9)

    status = _json(runner.invoke(app, ["status", str(catalog_path), str(state_dir)]))
    assert (status["state"], status["indexedFunds"], status["progress"]) == ("complete", 9, 100.0)

    found = _json(runner.invoke(app, ["search", "liquid", "--state-dir", str(state_dir)]))
    assert [fund["schemeCode"] for fund in found["funds"]] == [5]

    retry = _json(runner.invoke(app, ["retry", str(catalog_path), str(state_dir)]))
    assert retry["batch"] == []


def test_reset_requires_confirmation(catalog_path: Path, tmp_path: Path) -> None:
    state_dir = tmp_path / "state"
    runner.invoke(app, ["load-batch", str(catalog_path), str(state_dir)])

    refused = runner.invoke(app, ["reset", str(catalog_path), str(state_dir)])
    assert refused.exit_code == 1
    assert (state_dir / "checkpoint.json").exists()

    confirmed = _json(runner.invoke(app, ["reset", str(catalog_path), str(state_dir), "--yes"]))
    assert confirmed["state"] == "not_started"
    assert not (state_dir / "checkpoint.json").exists()


def test_suggest_and_analytics(catalog_path: Path) -> None:
    suggestions = _json(runner.invoke(app, ["suggest", "ax", "--source", str(catalog_path)]))
    analytics = _json(runner.invoke(app, ["analytics", "--source", str(catalog_path)]))

    assert suggestions["suggestions"][0] == "Axis Mutual Fund"
    assert analytics["totalFunds"] == 9
    assert analytics["categories"]["Equity"] == 5


def test_config_file_controls_paging(catalog_path: Path, tmp_path: Path) -> None:
    config_path = tmp_path / "fund_search.yaml"
    config_path.write_text("query:\n  default_limit: 2\n", encoding="utf-8")

    body = _json(runner.invoke(app, ["--config", str(config_path), "search", "--source", str(catalog_path)]))

    assert len(body["funds"]) == 2
    assert body["hasMore"] is True


def test_invalid_config_exits_with_error(catalog_path: Path, tmp_path: Path) -> None:
    config_path = tmp_path / "fund_search.yaml"
    config_path.write_text("loader:\n  batch_size: 0\n", encoding="utf-8")

    result = runner.invoke(app, ["--config", str(config_path), "search", "--source", str(catalog_path)])

    assert result.exit_code == 1


def test_missing_source_exits_with_error(tmp_path: Path) -> None:
    result = runner.invoke(app, ["search", "hdfc", "--source", str(tmp_path / "absent.json")])

    assert result.exit_code == 1


def test_search_output_includes_facets(catalog_path: Path) -> None:
    body = _json(runner.invoke(app, ["search", "--source", str(catalog_path), "--fund-house", "hdfc mutual fund"]))

    assert body["total"] == 3
    assert body["facets"]["subCategories"] == {"Large Cap": 1, "Mid Cap": 2}
    assert body["facets"]["riskTiers"] == {"5": 1, "6": 2}
