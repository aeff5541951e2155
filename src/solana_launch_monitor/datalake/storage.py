"""Bounded, non-persistent state shared by the monitor's tasks."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

from cachetools import Cache, FIFOCache

from ..config.settings import MonitorConfig
from .schemas import EnrichmentResult, TokenRecord
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS


class _ActiveTokenCache(FIFOCache):
    """FIFO cache that reports the entry it evicts on overflow."""

    def __init__(self, maxsize: int, on_evict: Optional[Callable[[str, TokenRecord], None]]) -> None:
        super().__init__(maxsize=maxsize)
        self._on_evict = on_evict

    def __setitem__(self, key: str, value: TokenRecord) -> None:
        if key in self:
            # Overwrite in place; a re-sighted mint keeps its first-insertion slot.
            Cache.__setitem__(self, key, value)
        else:
            super().__setitem__(key, value)

    def popitem(self):
        key, value = super().popitem()
        if self._on_evict is not None:
            self._on_evict(key, value)
        return key, value

    def clear(self) -> None:
        # MutableMapping.clear drains through popitem; a full clear is not an eviction.
        on_evict, self._on_evict = self._on_evict, None
        try:
            super().clear()
        finally:
            self._on_evict = on_evict


class StateStore:
    """Active tokens, creator deploy history and the seen-signature set.

    Every structure here is bounded: the active-token map by capacity (oldest
    insertion evicted first, reads never renew a position), the deploy history by
    age-based pruning once it grows past its limit, and the signature set by
    truncation to its most recent members.
    """

    def __init__(self, config: Optional[MonitorConfig] = None) -> None:
        self._config = config or MonitorConfig()
        self._logger = get_logger(__name__)
        self._tokens = _ActiveTokenCache(self._config.active_token_capacity, self._log_eviction)
        self._deploys: Dict[str, List[float]] = {}
        self._seen_signatures: Dict[str, None] = {}

    # -- active tokens -------------------------------------------------
    def add_token(self, record: TokenRecord) -> None:
        self._tokens[record.mint] = record

    def get_token(self, mint: str) -> Optional[TokenRecord]:
        return self._tokens.get(mint)

    def active_tokens(self) -> List[TokenRecord]:
        """Return the active tokens, oldest insertion first."""

        return list(self._tokens.values())

    def token_count(self) -> int:
        return len(self._tokens)

    def clear_tokens(self) -> int:
        count = len(self._tokens)
        self._tokens.clear()
        return count

    def apply_enrichment(self, mint: str, result: EnrichmentResult) -> bool:
        """Write enrichment onto the token if it is still active."""

        record = self._tokens.get(mint)
        if record is None:
            return False
        record.apply_enrichment(result)
        return True

    def _log_eviction(self, mint: str, record: TokenRecord) -> None:
        METRICS.increment("tokens.evicted")
        self._logger.debug("Evicted oldest active token %s (%s)", mint, record.symbol)

    # -- creator deploy history ----------------------------------------
    def recent_deploy_count(self, creator: Optional[str], now: float, window_seconds: float) -> int:
        if not creator:
            return 0
        return sum(1 for ts in self._deploys.get(creator, ()) if now - ts < window_seconds)

    def record_deploy(self, creator: Optional[str], now: float, window_seconds: float) -> None:
        """Append *now* to the creator's history, keeping only in-window timestamps."""

        if not creator:
            return
        recent = [ts for ts in self._deploys.get(creator, ()) if now - ts < window_seconds]
        recent.append(now)
        self._deploys[creator] = recent
        if len(self._deploys) > self._config.creator_history_limit:
            self.prune_creator_history(now)

    def prune_creator_history(self, now: float) -> int:
        cutoff = now - self._config.creator_history_max_age_seconds
        stale = [creator for creator, stamps in self._deploys.items() if not stamps or stamps[-1] < cutoff]
        for creator in stale:
            del self._deploys[creator]
        if stale:
            self._logger.debug("Pruned %d idle creators from deploy history", len(stale))
        return len(stale)

    def creator_count(self) -> int:
        return len(self._deploys)

    def deploy_history(self, creator: str) -> List[float]:
        return list(self._deploys.get(creator, ()))

    # -- processed signatures ------------------------------------------
    def remember_signature(self, signature: str) -> bool:
        """Record *signature*; return False when it was already seen."""

        if signature in self._seen_signatures:
            return False
        self._seen_signatures[signature] = None
        if len(self._seen_signatures) > self._config.seen_signature_limit:
            keep = list(self._seen_signatures)[-self._config.seen_signature_keep:]
            self._seen_signatures = dict.fromkeys(keep)
        return True

    def has_seen_signature(self, signature: str) -> bool:
        return signature in self._seen_signatures

    def seen_signature_count(self) -> int:
        return len(self._seen_signatures)

    def reset(self) -> None:
        """Drop all state. Intended for tests."""

        self._tokens.clear()
        self._deploys.clear()
        self._seen_signatures.clear()


__all__ = ["StateStore"]
