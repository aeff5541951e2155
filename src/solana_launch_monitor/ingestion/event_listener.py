"""Monitor service wiring the feed, the poller and the viewer relay together."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Callable, Coroutine, Dict, List, Mapping, Optional, Set

from ..analysis.scoring import RiskScorer
from ..analysis.transactions import TransactionParser
from ..config.settings import AppConfig, FeedConfig
from ..dashboard.state import BatchBuffers, ViewerChannel, ViewerHub
from ..datalake.schemas import LaunchEvent, TokenRecord, TradeRecord
from ..datalake.storage import StateStore
from ..monitoring.logger import correlation_scope, get_logger
from ..monitoring.metrics import METRICS
from ..utils.addresses import InvalidAddressError, validate_address
from ..utils.constants import now_ms
from .metadata import MetadataFetcher
from .onchain import OnChainEnricher
from .poller import ProgramTransactionPoller
from .pumpfun_api import FeedHandler, PumpFunFeedClient
from .rpc import SolanaRpcClient

WELCOME_MESSAGE = "Welcome to Backend Pump.fun Monitor Relay"
INVALID_ADDRESS_MESSAGE = "Invalid mint or creator address format."
TRADE_TYPES = ("buy", "sell")

FeedFactory = Callable[[FeedConfig, FeedHandler], Any]


def trade_from_payload(payload: Mapping[str, Any], token: Optional[TokenRecord]) -> TradeRecord:
    """Normalise a feed trade message; token name/symbol come from the active set."""

    trader = payload.get("buyer") or payload.get("traderPublicKey") or "N/A"
    sol_amount = payload.get("amount")
    if sol_amount is None:
        sol_amount = payload.get("solAmount")
    timestamp = payload.get("timestamp")
    return TradeRecord(
        mint=str(payload.get("mint") or ""),
        trader=str(trader),
        sol_amount=float(sol_amount or 0),
        token_amount=float(payload.get("tokenAmount") or 0),
        trade_type=str(payload["txType"]),
        timestamp=int(timestamp) if isinstance(timestamp, (int, float)) else now_ms(),
        token_name=token.name if token and token.name else "Unknown",
        token_symbol=token.symbol if token and token.symbol else "UNKNOWN",
    )


class LaunchMonitor:
    """Owns every piece of shared state and the periodic tasks that touch it.

    All work runs on one event loop. Feed messages, poll runs, flushes and viewer
    requests interleave only at ``await`` points, so the store is never locked;
    code that awaits re-checks whether a token is still active afterwards.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        state: Optional[StateStore] = None,
        hub: Optional[ViewerHub] = None,
        rpc: Optional[SolanaRpcClient] = None,
        metadata_fetcher: Optional[MetadataFetcher] = None,
        feed_factory: FeedFactory = PumpFunFeedClient,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._logger = get_logger(__name__)
        self._clock = clock
        self.state = state or StateStore(config.monitor)
        self.hub = hub or ViewerHub(config.server.viewer_queue_size)
        self.buffers = BatchBuffers()
        self.scorer = RiskScorer(config.scoring)
        self.parser = TransactionParser(config.rpc.program_id, config.parser)
        self.rpc = rpc or SolanaRpcClient(config.rpc)
        self.metadata = metadata_fetcher or MetadataFetcher(
            timeout=config.scoring.metadata_timeout_seconds
        )
        self.poller = ProgramTransactionPoller(
            self.rpc,
            self.parser,
            self.state,
            self.buffers.add_analyzed,
            config.monitor,
            signature_limit=config.rpc.signature_limit,
        )
        self.enricher = OnChainEnricher(self.rpc, config.rpc.program_id, config.rpc.signature_limit)
        self.feed = feed_factory(config.feed, self.handle_feed_message)
        self._tasks: List[asyncio.Task] = []
        self._pending: Set[asyncio.Task] = set()

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    # -- lifecycle -----------------------------------------------------
    async def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self.feed.run(), name="feed"),
            asyncio.create_task(self._flush_loop(), name="flush"),
            asyncio.create_task(self._full_clear_loop(), name="full-clear"),
        ]
        self.poller.start()
        self._logger.info("Launch monitor started")

    async def stop(self) -> None:
        tasks = self._tasks + list(self._pending)
        self._tasks = []
        for task in tasks:
            task.cancel()
        await self.poller.stop()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._pending.clear()
        await self.rpc.aclose()
        await self.metadata.aclose()
        self._logger.info("Launch monitor stopped")

    def reset(self) -> None:
        self.state.reset()
        self.buffers.clear()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error("Background task %s failed: %s", task.get_name(), exc, exc_info=exc)

    # -- upstream feed -------------------------------------------------
    def handle_feed_message(self, payload: Mapping[str, Any]) -> Optional[asyncio.Task]:
        if payload.get("txType") in TRADE_TYPES:
            mint = payload.get("mint")
            token = self.state.get_token(mint) if isinstance(mint, str) else None
            self.buffers.add_trade(trade_from_payload(payload, token))
            return None
        if not payload.get("mint") or not payload.get("name"):
            return None
        return self._spawn(self.process_new_token(payload))

    def submit_viewer_message(self, channel: ViewerChannel, text: str) -> asyncio.Task:
        """Handle a viewer message in the background; a disconnect does not cancel it."""

        return self._spawn(self.handle_viewer_message(channel, text))

    async def process_new_token(self, payload: Mapping[str, Any]) -> TokenRecord:
        event = LaunchEvent.from_payload(payload)
        scoring = self.scorer.config
        now = self._clock()
        # Deploy history is read and appended in arrival order, before any await.
        recent = self.state.recent_deploy_count(event.creator, now, scoring.deploy_window_seconds)
        self.state.record_deploy(event.creator, now, scoring.deploy_window_seconds)

        metadata = await self.metadata.lookup(event.uri)
        result = self.scorer.score(event, metadata, recent_deploys=recent)
        record = TokenRecord.from_launch(event, result, metadata)
        self.state.add_token(record)
        METRICS.increment("tokens.new")
        self.hub.broadcast({"type": "newToken", "data": record.to_dict()})
        self._logger.debug(
            "Scored %s (%s): %d %s", record.symbol, record.mint, record.score, record.classification.value
        )
        return record

    # -- periodic tasks ------------------------------------------------
    def flush(self) -> int:
        return self.buffers.flush(self.hub)

    def full_clear(self) -> int:
        cleared = self.state.clear_tokens()
        self._logger.info(
            "Clearing %d tokens from memory", cleared, extra={"metrics": METRICS.snapshot()}
        )
        return cleared

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.monitor.flush_interval_seconds)
            self.flush()

    async def _full_clear_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.monitor.full_clear_interval_seconds)
            self.full_clear()

    # -- viewers -------------------------------------------------------
    def welcome_messages(self) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [{"type": "welcome", "message": WELCOME_MESSAGE}]
        messages.extend(
            {"type": "newToken", "data": record.to_dict()} for record in self.state.active_tokens()
        )
        return messages

    async def handle_viewer_message(self, channel: ViewerChannel, text: str) -> None:
        try:
            message = json.loads(text)
        except ValueError as exc:
            self._logger.warning("Dropping malformed message from %s: %s", channel.id, exc)
            return
        if not isinstance(message, dict):
            return
        if message.get("type") == "requestOnChainData":
            await self.handle_onchain_request(channel, message.get("mint"), message.get("creator"))

    async def handle_onchain_request(self, channel: ViewerChannel, mint: Any, creator: Any) -> None:
        try:
            validate_address(mint)
            validate_address(creator)
        except InvalidAddressError as exc:
            self._logger.warning("Invalid on-chain data request from %s: %s", channel.id, exc)
            self.hub.send(
                channel, {"type": "onChainDataError", "mint": mint, "error": INVALID_ADDRESS_MESSAGE}
            )
            return

        with correlation_scope(f"{channel.id}:{mint}"):
            self._logger.info("Received on-chain data request for %s", mint)
            try:
                with METRICS.timer("enrichment.seconds"):
                    result = await self.enricher.enrich(mint, creator)
            except Exception as exc:  # noqa: BLE001 - reported to the requester only
                self._logger.error("Failed to fetch on-chain data for %s: %s", mint, exc)
                self.hub.send(
                    channel,
                    {
                        "type": "onChainDataError",
                        "mint": mint,
                        "error": f"Failed to fetch on-chain data: {exc}",
                    },
                )
                return
            # The token may have been evicted or cleared while the fetch was in flight.
            self.state.apply_enrichment(mint, result)
            self.hub.send(
                channel, {"type": "onChainDataResponse", "data": result.to_dict(), "mint": mint}
            )


__all__ = ["INVALID_ADDRESS_MESSAGE", "LaunchMonitor", "WELCOME_MESSAGE", "trade_from_payload"]
