"""Viewer fan-out and the batched output buffers."""

from __future__ import annotations

import asyncio
import itertools
import json
from typing import Any, Dict, List, Mapping, Optional

from ..datalake.schemas import AnalyzedTransaction, TradeRecord
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS

_channel_ids = itertools.count(1)


class ViewerChannel:
    """One connected viewer and its bounded outbound queue."""

    def __init__(self, queue_size: int = 1_000, channel_id: Optional[str] = None) -> None:
        self.id = channel_id or f"viewer-{next(_channel_ids)}"
        self.outbox: "asyncio.Queue[str]" = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0

    def deliver(self, text: str) -> bool:
        """Queue *text*; a full queue drops it for this viewer only."""

        try:
            self.outbox.put_nowait(text)
        except asyncio.QueueFull:
            self.dropped += 1
            METRICS.increment("viewers.dropped_messages")
            return False
        return True


class ViewerHub:
    """The set of open viewer channels."""

    def __init__(self, queue_size: int = 1_000) -> None:
        self._queue_size = queue_size
        self._channels: Dict[str, ViewerChannel] = {}
        self._logger = get_logger(__name__)

    def register(self) -> ViewerChannel:
        channel = ViewerChannel(self._queue_size)
        self._channels[channel.id] = channel
        METRICS.gauge("viewers.connected", len(self._channels))
        self._logger.info("Viewer %s connected (%d open)", channel.id, len(self._channels))
        return channel

    def unregister(self, channel: ViewerChannel) -> None:
        if self._channels.pop(channel.id, None) is None:
            return
        METRICS.gauge("viewers.connected", len(self._channels))
        self._logger.info("Viewer %s disconnected (%d open)", channel.id, len(self._channels))

    def __len__(self) -> int:
        return len(self._channels)

    def channels(self) -> List[ViewerChannel]:
        return list(self._channels.values())

    def broadcast(self, message: Mapping[str, Any]) -> int:
        """Serialize once and queue for every viewer; return how many accepted it."""

        if not self._channels:
            return 0
        text = json.dumps(message)
        return sum(1 for channel in list(self._channels.values()) if channel.deliver(text))

    def send(self, channel: ViewerChannel, message: Mapping[str, Any]) -> bool:
        return channel.deliver(json.dumps(message))


class BatchBuffers:
    """Trade and analyzed-transaction events awaiting the next flush."""

    def __init__(self) -> None:
        self.trades: List[TradeRecord] = []
        self.analyzed: List[AnalyzedTransaction] = []

    def add_trade(self, trade: TradeRecord) -> None:
        self.trades.append(trade)
        METRICS.increment("trades.buffered")

    def add_analyzed(self, transaction: AnalyzedTransaction) -> None:
        self.analyzed.append(transaction)

    def flush(self, hub: ViewerHub) -> int:
        """Send one batch per non-empty buffer, then empty it. Returns batches sent."""

        sent = 0
        if self.trades:
            hub.broadcast({"type": "tradeBatch", "data": [trade.to_dict() for trade in self.trades]})
            self.trades = []
            sent += 1
        if self.analyzed:
            hub.broadcast(
                {"type": "analyzedTxBatch", "data": [tx.to_dict() for tx in self.analyzed]}
            )
            self.analyzed = []
            sent += 1
        if sent:
            METRICS.increment("batches.sent", sent)
        return sent

    def clear(self) -> None:
        self.trades = []
        self.analyzed = []


__all__ = ["BatchBuffers", "ViewerChannel", "ViewerHub"]
