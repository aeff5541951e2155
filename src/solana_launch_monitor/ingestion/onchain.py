"""On-demand on-chain enrichment for a single token/creator pair."""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from ..analysis.transactions import find_program_instruction, lamport_delta, message_account_keys
from ..datalake.schemas import EnrichmentResult, OnChainTrade
from ..monitoring.logger import get_logger
from ..utils.constants import LAMPORTS_PER_SOL
from .rpc import SolanaRpcClient

FLAG_HOLDERS_UNAVAILABLE = "holder_data_unavailable_backend"
FLAG_TRADE_HISTORY_UNAVAILABLE = "trade_history_unavailable"
FLAG_BACKEND_ERROR = "backend_onchain_error"


def creator_trade(detail: Optional[Mapping[str, Any]], creator: str, program_id: str) -> Optional[OnChainTrade]:
    """Classify the creator's own lamport movement in a program transaction.

    A positive delta (the creator received SOL) is recorded as a sell, a negative
    one as a buy. This sign convention has not been checked against decoded
    instructions.
    """

    if not detail or not detail.get("meta"):
        return None
    if find_program_instruction(detail, program_id) is None:
        return None
    account_keys = message_account_keys(detail)
    if creator not in account_keys:
        return None
    delta = lamport_delta(detail["meta"], account_keys.index(creator))
    if not delta:
        return None
    signatures = detail["transaction"].get("signatures") or [""]
    return OnChainTrade(
        signature=signatures[0],
        type="sell" if delta > 0 else "buy",
        amount=abs(delta / LAMPORTS_PER_SOL),
    )


class OnChainEnricher:
    """Builds the creator's recent program activity for one viewer request.

    Holder counting is not implemented, so every result carries
    ``holder_data_unavailable_backend``. History failures degrade to a partial
    result flagged ``trade_history_unavailable``. Nothing is retried here.
    """

    def __init__(self, rpc: SolanaRpcClient, program_id: str, history_limit: int = 10) -> None:
        self._rpc = rpc
        self._program_id = program_id
        self._history_limit = history_limit
        self._logger = get_logger(__name__)

    async def enrich(self, mint: str, creator: str) -> EnrichmentResult:
        try:
            result = EnrichmentResult(flags=[FLAG_HOLDERS_UNAVAILABLE])
            try:
                result.past_trades = await self._creator_history(creator)
                self._logger.info(
                    "Fetched %d past trades for %s (creator activity)", len(result.past_trades), mint
                )
            except Exception as exc:  # noqa: BLE001 - partial result instead of failure
                self._logger.error("Failed to fetch past trades for %s: %s", mint, exc)
                result.flags.append(FLAG_TRADE_HISTORY_UNAVAILABLE)
            return result
        except Exception as exc:  # noqa: BLE001
            self._logger.error("Fatal error fetching on-chain data for %s: %s", mint, exc)
            return EnrichmentResult(flags=[FLAG_BACKEND_ERROR])

    async def _creator_history(self, creator: str) -> List[OnChainTrade]:
        entries = await self._rpc.get_signatures_for_address(creator, limit=self._history_limit)
        signatures = [entry["signature"] for entry in entries or [] if entry.get("signature")]
        if not signatures:
            return []
        details = await self._rpc.get_transactions(signatures)
        trades: List[OnChainTrade] = []
        for detail in details:
            trade = creator_trade(detail, creator, self._program_id)
            if trade is not None:
                trades.append(trade)
        return trades


__all__ = [
    "FLAG_BACKEND_ERROR",
    "FLAG_HOLDERS_UNAVAILABLE",
    "FLAG_TRADE_HISTORY_UNAVAILABLE",
    "OnChainEnricher",
    "creator_trade",
]
