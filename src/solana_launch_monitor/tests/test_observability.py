from __future__ import annotations

import asyncio
import json
import logging

import pytest

from solana_launch_monitor.monitoring.logger import StructuredFormatter, _ContextFilter, correlation_scope
from solana_launch_monitor.monitoring.metrics import METRICS, MetricsRegistry


def _format(record: logging.LogRecord) -> dict:
    _ContextFilter().filter(record)
    return json.loads(StructuredFormatter().format(record))


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("solana_launch_monitor.test", logging.INFO, __file__, 1, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_structured_formatter_emits_json_with_extras() -> None:
    payload = _format(_record("Clearing 3 tokens from memory", metrics={"counters": {"tokens.new": 3}}))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "solana_launch_monitor.test"
    assert payload["message"] == "Clearing 3 tokens from memory"
    assert payload["correlation_id"] == "-"
    assert payload["extra"] == {"metrics": {"counters": {"tokens.new": 3}}}
    assert "task" not in payload


def test_correlation_scope_survives_awaits_and_names_the_task() -> None:
    async def _request():
        with correlation_scope("viewer-1:MINT") as correlation_id:
            await asyncio.sleep(0)
            return correlation_id, _format(_record("Received on-chain data request"))

    async def _run():
        return await asyncio.create_task(_request(), name="enrich-task")

    correlation_id, payload = asyncio.run(_run())

    assert correlation_id == "viewer-1:MINT"
    assert payload["correlation_id"] == "viewer-1:MINT"
    assert payload["task"] == "enrich-task"
    assert _format(_record("outside"))["correlation_id"] == "-"


def test_timer_records_samples_even_on_error() -> None:
    registry = MetricsRegistry(max_samples=2)
    with registry.timer("poller.run_seconds"):
        pass
    with pytest.raises(RuntimeError):
        with registry.timer("poller.run_seconds"):
            raise RuntimeError("rpc down")
    with registry.timer("poller.run_seconds"):
        pass

    stats = registry.timing_stats("poller.run_seconds")
    assert stats["count"] == 2
    assert stats["max"] >= stats["mean"] >= 0.0
    assert registry.timing_stats("unknown") == {"count": 0, "mean": 0.0, "max": 0.0}


def test_snapshot_and_reset() -> None:
    METRICS.increment("feed.messages", 3)
    METRICS.gauge("viewers.connected", 2)
    METRICS.observe("enrichment.seconds", 0.25)

    snapshot = METRICS.snapshot()
    assert snapshot["counters"]["feed.messages"] == 3
    assert snapshot["gauges"]["viewers.connected"] == 2
    assert snapshot["timings"]["enrichment.seconds"]["count"] == 1

    METRICS.reset()
    assert METRICS.snapshot() == {"counters": {}, "gauges": {}, "timings": {}}
