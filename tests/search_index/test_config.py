"""Configuration loading and validation tests."""

from __future__ import annotations

import json
import textwrap

import pytest

from FundCatalog.SearchIndex.config import (
    FundSearchConfig,
    FundSearchConfigManager,
    LoaderConfig,
    QueryConfig,
    StreamConfig,
)


def test_config_manager_loads_yaml(tmp_path):
    """YAML configs populate every section and survive a reload."""

    config_path = tmp_path / "fund_search.yaml"
    config_path.write_text(
        textwrap.dedent(
            """
            stream:
              chunk_size: 4096
            index:
              prefix_max_length: 5
            query:
              default_limit: 20
              weights:
                fund_house: 40
            loader:
              batch_size: 250
              estimate_after: 1000
            """
        ).strip()
    )

    manager = FundSearchConfigManager(config_path)
    config = manager.get()

    assert config.stream.chunk_size == 4096
    assert config.index.prefix_max_length == 5
    assert config.query.default_limit == 20
    assert config.query.weights["fund_house"] == 40.0
    assert config.query.weights["exact_name"] == 100.0
    assert config.loader.batch_size == 250

    config_path.write_text(json.dumps({"loader": {"batch_size": 5}}), encoding="utf-8")
    reloaded = manager.reload()
    assert reloaded.loader.batch_size == 5
    assert reloaded.query == QueryConfig()


def test_config_manager_invalid_yaml(tmp_path):
    """Invalid YAML surfaces a ValueError with file path context."""

    config_path = tmp_path / "fund_search.yaml"
    config_path.write_text("stream: [\n  - chunk_size: 512\n", encoding="utf-8")

    with pytest.raises(ValueError) as excinfo:
        FundSearchConfigManager(config_path)

    assert str(config_path) in str(excinfo.value)


def test_config_manager_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        FundSearchConfigManager(tmp_path / "absent.yaml")


@pytest.mark.parametrize(
    "payload",
    [
        ["not", "a", "mapping"],
        {"stream": "fast"},
        {"loader": {"batch_size": 0}},
        {"query": {"default_limit": 5000}},
        {"index": {"prefix_min_length": 7, "prefix_max_length": 3}},
        {"stream": {"unknown_field": 1}},
    ],
)
def test_invalid_payloads_are_rejected(payload):
    with pytest.raises((ValueError, TypeError)):
        FundSearchConfig.from_dict(payload)


def test_defaults():
    config = FundSearchConfig.from_dict({})

    assert config == FundSearchConfig()
    assert config.stream == StreamConfig(chunk_size=65536, progress_interval=5000)
    assert config.loader == LoaderConfig(batch_size=10, estimate_after=100, lock_timeout_s=5.0)
    assert config.query.max_limit == 1000
