"""Interval poller for recent transactions of the monitored program."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping, Optional, Set

from ..analysis.transactions import TransactionParser
from ..config.settings import MonitorConfig
from ..datalake.schemas import AnalyzedTransaction
from ..datalake.storage import StateStore
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from .rpc import SolanaRpcClient

AnalyzedSink = Callable[[AnalyzedTransaction], None]


class ProgramTransactionPoller:
    """Polls ``getSignaturesForAddress`` for the program on a fixed interval.

    Runs never overlap: a tick that finds a run in flight is skipped, not queued.
    Any failure inside a run stops the interval and schedules exactly one restart
    after ``poll_retry_delay_seconds``; nothing is polled in between.
    """

    def __init__(
        self,
        rpc: SolanaRpcClient,
        parser: TransactionParser,
        state: StateStore,
        sink: AnalyzedSink,
        config: Optional[MonitorConfig] = None,
        signature_limit: int = 10,
    ) -> None:
        self._rpc = rpc
        self._parser = parser
        self._state = state
        self._sink = sink
        self._config = config or MonitorConfig()
        self._signature_limit = signature_limit
        self._logger = get_logger(__name__)
        self._busy = False
        self._interval_task: Optional[asyncio.Task] = None
        self._restart_task: Optional[asyncio.Task] = None
        self._runs: Set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        """True while the interval timer is active (false in degraded mode)."""

        return self._interval_task is not None and not self._interval_task.done()

    @property
    def is_degraded(self) -> bool:
        return self._restart_task is not None and not self._restart_task.done()

    @property
    def busy(self) -> bool:
        return self._busy

    def start(self) -> None:
        if self.is_running:
            return
        self._interval_task = asyncio.create_task(self._interval_loop(), name="poller-interval")
        self._logger.info(
            "Polling %s every %.1fs", self._parser.program_id, self._config.poll_interval_seconds
        )

    async def stop(self) -> None:
        tasks = [task for task in (self._interval_task, self._restart_task) if task is not None]
        tasks.extend(self._runs)
        self._interval_task = None
        self._restart_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._runs.clear()

    async def _interval_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.poll_interval_seconds)
            run = asyncio.create_task(self.run_once())
            self._runs.add(run)
            run.add_done_callback(self._runs.discard)

    async def run_once(self) -> Optional[int]:
        """Execute one guarded run; return the number of buffered results, or None if skipped."""

        if self._busy:
            METRICS.increment("poller.skipped")
            return None
        self._busy = True
        try:
            with METRICS.timer("poller.run_seconds"):
                return await self.poll_once()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - any failure aborts the run and degrades
            METRICS.increment("poller.failures")
            self._logger.error("Polling error: %s", exc)
            self._enter_degraded_mode()
            return 0
        finally:
            self._busy = False

    async def poll_once(self) -> int:
        METRICS.increment("poller.runs")
        signatures = await self._rpc.get_signatures_for_address(
            self._parser.program_id, limit=self._signature_limit
        )
        if not signatures:
            if signatures is None:
                self._logger.warning("Polling: no transaction signatures received")
            return 0

        found = 0
        for entry in signatures:
            signature = _signature_of(entry)
            if not signature or not self._state.remember_signature(signature):
                continue
            detail = await self._rpc.get_transaction(signature)
            if not detail:
                continue
            analyzed = self._parser.parse(detail)
            if analyzed is None:
                continue
            self._sink(analyzed)
            found += 1
        if found:
            METRICS.increment("poller.analyzed", found)
            self._logger.debug("Polling buffered %d analyzed transactions", found)
        return found

    def _enter_degraded_mode(self) -> None:
        if self._interval_task is None:
            return
        self._interval_task.cancel()
        self._interval_task = None
        delay = self._config.poll_retry_delay_seconds
        self._logger.warning("Polling stopped; retrying in %.1fs", delay)
        self._restart_task = asyncio.create_task(self._restart_after(delay), name="poller-restart")

    async def _restart_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._restart_task = None
        self.start()
        self._logger.info("Polling restarted")


def _signature_of(entry: Any) -> Optional[str]:
    if isinstance(entry, Mapping):
        value = entry.get("signature")
        return value if isinstance(value, str) else None
    return None


__all__ = ["ProgramTransactionPoller"]
