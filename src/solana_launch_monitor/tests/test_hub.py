from __future__ import annotations

import asyncio
import json

from solana_launch_monitor.dashboard.state import BatchBuffers, ViewerHub
from solana_launch_monitor.datalake.schemas import AnalyzedTransaction, TradeRecord, TransactionType
from solana_launch_monitor.monitoring.metrics import METRICS


def _trade(index: int) -> TradeRecord:
    return TradeRecord(
        mint=f"mint-{index}",
        trader="TRADER",
        sol_amount=0.1 * index,
        token_amount=1000.0,
        trade_type="buy",
        timestamp=1_700_000_000_000 + index,
    )


def _analyzed(signature: str) -> AnalyzedTransaction:
    return AnalyzedTransaction(
        signature=signature,
        type=TransactionType.SELL,
        mint="mint-a",
        trader="TRADER",
        sol_amount=60.0,
        token_amount=5000.0,
        block_time=1_700_000_000,
        is_bundle=False,
        whale_detected=True,
    )


def _drain(channel):
    messages = []
    while not channel.outbox.empty():
        messages.append(json.loads(channel.outbox.get_nowait()))
    return messages


def test_broadcast_reaches_every_viewer_and_full_queues_drop_locally() -> None:
    async def _run():
        hub = ViewerHub(queue_size=1)
        first = hub.register()
        second = hub.register()
        assert METRICS.get_gauge("viewers.connected") == 2

        assert hub.broadcast({"type": "newToken", "data": {"mint": "m1"}}) == 2
        _drain(first)
        assert hub.broadcast({"type": "newToken", "data": {"mint": "m2"}}) == 1

        assert [m["data"]["mint"] for m in _drain(first)] == ["m2"]
        assert [m["data"]["mint"] for m in _drain(second)] == ["m1"]
        assert second.dropped == 1

        hub.unregister(second)
        hub.unregister(second)
        assert len(hub) == 1
        assert METRICS.get_gauge("viewers.connected") == 1

    asyncio.run(_run())


def test_flush_emits_nothing_when_buffers_are_empty() -> None:
    async def _run():
        hub = ViewerHub()
        channel = hub.register()
        assert BatchBuffers().flush(hub) == 0
        assert _drain(channel) == []

    asyncio.run(_run())


def test_flush_emits_one_batch_per_non_empty_buffer() -> None:
    async def _run():
        hub = ViewerHub()
        channel = hub.register()
        buffers = BatchBuffers()
        for index in range(5):
            buffers.add_trade(_trade(index))
        buffers.add_analyzed(_analyzed("sig-1"))
        buffers.add_analyzed(_analyzed("sig-2"))

        assert buffers.flush(hub) == 2
        trades, analyzed = _drain(channel)
        assert trades["type"] == "tradeBatch"
        assert [item["mint"] for item in trades["data"]] == [f"mint-{i}" for i in range(5)]
        assert trades["data"][0]["tokenName"] == "Unknown"
        assert analyzed["type"] == "analyzedTxBatch"
        assert [item["signature"] for item in analyzed["data"]] == ["sig-1", "sig-2"]
        assert analyzed["data"][0]["timestamp"] == 1_700_000_000_000
        assert buffers.trades == []
        assert buffers.analyzed == []
        assert buffers.flush(hub) == 0
        assert METRICS.get("batches.sent") == 2

        buffers.add_analyzed(_analyzed("sig-3"))
        assert buffers.flush(hub) == 1
        assert [message["type"] for message in _drain(channel)] == ["analyzedTxBatch"]

    asyncio.run(_run())
