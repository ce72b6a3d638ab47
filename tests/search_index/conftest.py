"""Shared catalog fixtures for the search index suite."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Sequence

import pytest

SAMPLE_RECORDS: List[Dict[str, Any]] = [
    {"schemeCode": 1, "schemeName": "HDFC Top 100 Fund - Regular Plan - Growth", "isinGrowth": "INF179K01BB8"},
    {"schemeCode": 2, "schemeName": "HDFC Mid-Cap Opportunities Fund - Regular Plan - Growth"},
    {"schemeCode": 3, "schemeName": "HDFC Mid-Cap Opportunities Fund - Direct Plan - Growth"},
    {"schemeCode": 4, "schemeName": "SBI Small Cap Fund - Direct Plan - Growth"},
    {"schemeCode": 5, "schemeName": "Axis Liquid Fund - Direct Plan - Daily IDCW Reinvestment"},
    {"schemeCode": 6, "schemeName": "ICICI Prudential Bluechip Fund - Growth"},
    {"schemeCode": 7, "schemeName": "Kotak Equity Arbitrage Fund - Regular Plan - Dividend"},
    {"schemeCode": 8, "schemeName": "Nippon India Nifty 50 Index Fund - Direct Plan - Growth"},
    {"schemeCode": 9, "schemeName": "Some Unknown Scheme"},
]


def dump_catalog(records: Sequence[Any]) -> bytes:
    """Serialize records the way the upstream catalog is published."""

    return json.dumps(list(records), indent=1, ensure_ascii=False).encode("utf-8")


@pytest.fixture
def sample_records() -> List[Dict[str, Any]]:
    return [dict(record) for record in SAMPLE_RECORDS]


@pytest.fixture
def write_catalog(tmp_path: Path) -> Callable[..., Path]:
    """Return a factory writing records (or raw bytes) to a catalog file."""

    def _write(records: Any, name: str = "catalog.json") -> Path:
        path = tmp_path / name
        payload = records if isinstance(records, bytes) else dump_catalog(records)
        path.write_bytes(payload)
        return path

    return _write


@pytest.fixture
def catalog_path(write_catalog: Callable[..., Path], sample_records: List[Dict[str, Any]]) -> Path:
    return write_catalog(sample_records)
