"""Streaming client for the Pump.fun token-creation feed."""

from __future__ import annotations

import asyncio
import inspect
import json
from enum import Enum
from typing import Any, Callable, Dict, Union

import websockets
from websockets.exceptions import WebSocketException

from ..config.settings import FeedConfig
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS

# Coroutine results are awaited before the next frame is read; anything else is ignored.
FeedHandler = Callable[[Dict[str, Any]], Any]


class FeedState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class PumpFunFeedClient:
    """Keeps one websocket to the feed open, forever.

    Each text frame is decoded as JSON and handed to ``handler``; frames that fail
    to decode, and handler failures, are logged and dropped. When the socket
    closes or errors the client waits ``reconnect_delay_seconds`` and dials again.
    Cancelling :meth:`run` is the only way out of the loop.
    """

    def __init__(
        self,
        config: FeedConfig,
        handler: FeedHandler,
        connect: Callable[..., Any] = websockets.connect,
    ) -> None:
        self._config = config
        self._url = str(config.url)
        self._handler = handler
        self._connect = connect
        self._logger = get_logger(__name__)
        self._state = FeedState.DISCONNECTED
        self._connections = 0

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def connections(self) -> int:
        return self._connections

    async def run(self) -> None:
        while True:
            await self._connect_and_listen()
            self._state = FeedState.DISCONNECTED
            METRICS.increment("feed.reconnects")
            self._logger.info(
                "Feed connection closed; reconnecting in %.1fs", self._config.reconnect_delay_seconds
            )
            await asyncio.sleep(self._config.reconnect_delay_seconds)

    async def _connect_and_listen(self) -> None:
        self._state = FeedState.CONNECTING
        try:
            async with self._connect(
                self._url,
                ping_interval=self._config.ping_interval_seconds,
                ping_timeout=self._config.ping_interval_seconds / 2,
            ) as ws:
                self._state = FeedState.CONNECTED
                self._connections += 1
                self._logger.info("Connected to token feed %s", self._url)
                await ws.send(json.dumps({"method": self._config.subscribe_method}))
                async for message in ws:
                    await self._dispatch(message)
        except (WebSocketException, OSError, asyncio.TimeoutError) as exc:
            self._logger.error("Token feed error: %s", exc)

    async def _dispatch(self, message: Union[str, bytes]) -> None:
        METRICS.increment("feed.messages")
        try:
            payload = json.loads(message)
        except (TypeError, ValueError) as exc:
            METRICS.increment("feed.malformed")
            self._logger.warning("Dropping malformed feed message: %s", exc)
            return
        if not isinstance(payload, dict):
            METRICS.increment("feed.malformed")
            self._logger.warning("Dropping non-object feed message")
            return
        try:
            result = self._handler(payload)
            if inspect.iscoroutine(result):
                await result
        except Exception:  # noqa: BLE001 - one bad message must not drop the connection
            self._logger.exception("Feed handler failed for message with keys %s", sorted(payload)[:10])


__all__ = ["FeedState", "PumpFunFeedClient"]
