"""Data models shared by the ingestion, analysis and relay layers.

``to_dict`` methods produce the camelCase payloads of the viewer protocol.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class TokenClassification(str, Enum):
    """Outcome of new-token risk scoring."""

    LEGIT = "legit"
    SUSPICIOUS = "suspicious"
    AUTOBUY_SCAM = "autobuy_scam"
    BUNDLE_SCAM = "bundle_scam"
    BUNDLE_AUTOBUY_SCAM = "bundle_autobuy_scam"
    SCAM = "scam"


class RiskLevel(str, Enum):
    """UI-facing severity derived from the classification."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class TransactionType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    OTHER = "OTHER"


class MetadataStatus(str, Enum):
    """Result of resolving a token's off-chain metadata URI."""

    OK = "ok"
    INVALID_URI = "invalid_uri"
    FAILED = "failed"
    ERROR = "error"


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _as_optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(slots=True)
class LaunchEvent:
    """A new-token message from the upstream feed, normalised."""

    mint: str
    name: str
    symbol: str = ""
    creator: Optional[str] = None
    v_sol_in_bonding_curve: float = 0.0
    v_tokens_in_bonding_curve: float = 0.0
    market_cap_sol: float = 0.0
    uri: Optional[str] = None
    initial_buy: float = 0.0
    sol_amount: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "LaunchEvent":
        uri = payload.get("uri")
        return cls(
            mint=str(payload["mint"]),
            name=str(payload["name"]),
            symbol=str(payload.get("symbol") or ""),
            creator=payload.get("traderPublicKey"),
            v_sol_in_bonding_curve=_as_float(payload.get("vSolInBondingCurve")),
            v_tokens_in_bonding_curve=_as_float(payload.get("vTokensInBondingCurve")),
            market_cap_sol=_as_float(payload.get("marketCapSol")),
            uri=uri if isinstance(uri, str) else None,
            initial_buy=_as_float(payload.get("initialBuy")),
            sol_amount=_as_optional_float(payload.get("solAmount")),
        )


@dataclass(slots=True)
class MetadataLookup:
    """Social links extracted from the metadata document, if it could be read."""

    status: MetadataStatus
    twitter_url: Optional[str] = None
    telegram_url: Optional[str] = None
    error: Optional[str] = None


@dataclass(slots=True)
class ScoreResult:
    score: int
    flags: List[str]
    classification: TokenClassification
    risk_level: RiskLevel


@dataclass(slots=True)
class OnChainTrade:
    """A creator balance movement observed during enrichment."""

    signature: str
    type: str
    amount: float

    def to_dict(self) -> Dict[str, Any]:
        return {"signature": self.signature, "type": self.type, "amount": self.amount}


@dataclass(slots=True)
class EnrichmentResult:
    holders_count: Optional[int] = None
    past_trades: List[OnChainTrade] = field(default_factory=list)
    score_adjustment: int = 0
    flags: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "holdersCount": self.holders_count,
            "pastTrades": [trade.to_dict() for trade in self.past_trades],
            "scoreAdjustments": self.score_adjustment,
            "flags": list(self.flags),
        }


@dataclass(slots=True)
class TokenRecord:
    """One observed token creation, owned by the state store."""

    mint: str
    name: str
    symbol: str
    creator: Optional[str]
    v_sol: float
    v_tokens: float
    market_cap: float
    uri: Optional[str]
    initial_buy: float
    score: int
    flags: List[str]
    classification: TokenClassification
    risk_level: RiskLevel
    twitter_url: Optional[str] = None
    telegram_url: Optional[str] = None
    holders_count: Optional[int] = None
    on_chain_score_adjustment: int = 0
    on_chain_flags: List[str] = field(default_factory=list)
    recent_on_chain_trades: List[OnChainTrade] = field(default_factory=list)

    @classmethod
    def from_launch(
        cls,
        event: LaunchEvent,
        result: ScoreResult,
        metadata: Optional[MetadataLookup] = None,
    ) -> "TokenRecord":
        return cls(
            mint=event.mint,
            name=event.name,
            symbol=event.symbol,
            creator=event.creator,
            v_sol=event.v_sol_in_bonding_curve,
            v_tokens=event.v_tokens_in_bonding_curve,
            market_cap=event.market_cap_sol,
            uri=event.uri,
            initial_buy=event.initial_buy,
            score=result.score,
            flags=list(result.flags),
            classification=result.classification,
            risk_level=result.risk_level,
            twitter_url=metadata.twitter_url if metadata else None,
            telegram_url=metadata.telegram_url if metadata else None,
        )

    def apply_enrichment(self, result: EnrichmentResult) -> None:
        self.holders_count = result.holders_count
        self.on_chain_score_adjustment = result.score_adjustment
        self.on_chain_flags = list(result.flags)
        self.recent_on_chain_trades = list(result.past_trades)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mint": self.mint,
            "name": self.name,
            "symbol": self.symbol,
            "creator": self.creator,
            "vSol": self.v_sol,
            "vTokens": self.v_tokens,
            "marketCap": self.market_cap,
            "uri": self.uri,
            "initialBuy": self.initial_buy,
            "score": self.score,
            "flags": list(self.flags),
            "type": self.classification.value,
            "riskLevel": self.risk_level.value,
            "twitterUrl": self.twitter_url,
            "telegramUrl": self.telegram_url,
            "holdersCount": self.holders_count,
            "onChainScoreAdjustments": self.on_chain_score_adjustment,
            "onChainFlags": list(self.on_chain_flags),
            "recentOnChainTrades": [trade.to_dict() for trade in self.recent_on_chain_trades],
        }


@dataclass(slots=True)
class TradeRecord:
    """A buy/sell relayed from the feed; lives only until the next flush."""

    mint: str
    trader: str
    sol_amount: float
    token_amount: float
    trade_type: str
    timestamp: int
    token_name: str = "Unknown"
    token_symbol: str = "UNKNOWN"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mint": self.mint,
            "trader": self.trader,
            "solAmount": self.sol_amount,
            "tokenAmount": self.token_amount,
            "tradeType": self.trade_type,
            "timestamp": self.timestamp,
            "tokenName": self.token_name,
            "tokenSymbol": self.token_symbol,
        }


@dataclass(slots=True, frozen=True)
class AnalyzedTransaction:
    """A polled program transaction that looked like a relevant trade."""

    signature: str
    type: TransactionType
    mint: str
    trader: str
    sol_amount: float
    token_amount: float
    block_time: Optional[int]
    is_bundle: bool
    whale_detected: bool
    logs: tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signature": self.signature,
            "type": self.type.value,
            "mint": self.mint,
            "trader": self.trader,
            "solAmount": self.sol_amount,
            "tokenAmount": self.token_amount,
            "timestamp": self.block_time * 1000 if self.block_time is not None else None,
            "isBundle": self.is_bundle,
            "whaleDetected": self.whale_detected,
            "logs": list(self.logs),
        }


__all__ = [
    "AnalyzedTransaction",
    "EnrichmentResult",
    "LaunchEvent",
    "MetadataLookup",
    "MetadataStatus",
    "OnChainTrade",
    "RiskLevel",
    "ScoreResult",
    "TokenClassification",
    "TokenRecord",
    "TradeRecord",
    "TransactionType",
]
