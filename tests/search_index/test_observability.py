"""Tests for the metrics facade and the JSON log formatter."""

from __future__ import annotations

import io
import json
import logging

import pytest

from FundCatalog.SearchIndex.logging_utils import JSONFormatter, configure_logging
from FundCatalog.SearchIndex.observability import MetricsCollector, Observability


def test_metrics_collector_aggregates_by_label() -> None:
    collector = MetricsCollector()
    collector.increment("catalog_records_indexed", 3, mode="live")
    collector.increment("catalog_records_indexed", 2, mode="live")
    collector.increment("catalog_records_indexed", mode="checkpointed")
    for value in (1.0, 2.0, 3.0, 4.0):
        collector.observe("search_latency_ms", value, mode="text")

    assert collector.counter_value("catalog_records_indexed", mode="live") == 5.0
    assert collector.counter_value("catalog_records_indexed", mode="checkpointed") == 1.0
    assert collector.counter_value("never_seen") == 0.0
    (latency,) = collector.latencies()
    assert (latency.count, latency.p50, latency.max) == (4, 2.0, 4.0)
    assert latency.labels == {"mode": "text"}


def test_trace_spans_record_failures_and_reraise(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="FundCatalog.SearchIndex")
    observability = Observability()

    with pytest.raises(KeyError):
        with observability.trace("loader_batch"):
            raise KeyError("boom")

    (record,) = [record for record in caplog.records if record.getMessage() == "fundsearch-trace"]
    assert record.event["status"] == "error"
    snapshot = observability.metrics_snapshot()
    assert snapshot["latencies"][0]["name"] == "trace_loader_batch_ms"
    assert snapshot["latencies"][0]["count"] == 1


def test_json_formatter_merges_event_payload() -> None:
    record = logging.LogRecord("FundCatalog.SearchIndex", logging.WARNING, __file__, 1, "loader-record-failed", None, None)
    record.event = {"scheme_code": 4, "reason": "invalid record"}

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "loader-record-failed"
    assert payload["level"] == "WARNING"
    assert payload["scheme_code"] == 4
    assert payload["timestamp"].endswith("Z")


def test_configure_logging_installs_one_handler() -> None:
    stream = io.StringIO()

    logger = configure_logging("info", stream=stream)
    configure_logging("debug", stream=stream)
    logger.info("catalog-ingest-complete", extra={"event": {"indexed": 9}})

    assert sum(isinstance(handler.formatter, JSONFormatter) for handler in logger.handlers) == 1
    assert logger.level == logging.DEBUG
    line = json.loads(stream.getvalue().splitlines()[-1])
    assert (line["message"], line["indexed"]) == ("catalog-ingest-complete", 9)
