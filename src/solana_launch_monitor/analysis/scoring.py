"""Heuristic risk scoring for newly created tokens."""

from __future__ import annotations

from typing import Iterable, Union

from ..config.settings import ScoringConfig
from ..datalake.schemas import (
    LaunchEvent,
    MetadataLookup,
    MetadataStatus,
    RiskLevel,
    ScoreResult,
    TokenClassification,
)

FLAG_HIGH_MARKET_CAP = "high_market_cap"
FLAG_INVALID_METADATA_URI = "invalid_metadata_uri"
FLAG_METADATA_FETCH_FAILED = "metadata_fetch_failed"
FLAG_METADATA_FETCH_ERROR = "metadata_fetch_error"
FLAG_SNIPER_AUTOBUY = "sniper_autobuy"
FLAG_CREATOR_DEPLOY_SPAM = "creator_deploy_spam"

_RISK_LEVELS = {
    TokenClassification.LEGIT: RiskLevel.LOW,
    TokenClassification.SUSPICIOUS: RiskLevel.MEDIUM,
    TokenClassification.AUTOBUY_SCAM: RiskLevel.HIGH,
    TokenClassification.BUNDLE_SCAM: RiskLevel.HIGH,
    TokenClassification.BUNDLE_AUTOBUY_SCAM: RiskLevel.CRITICAL,
    TokenClassification.SCAM: RiskLevel.CRITICAL,
}


def risk_level_for(classification: Union[TokenClassification, str, None]) -> RiskLevel:
    """Map a classification to its risk level; unknown values read as Medium."""

    try:
        return _RISK_LEVELS[TokenClassification(classification)]
    except (KeyError, ValueError):
        return RiskLevel.MEDIUM


def classify(score: int, flags: Iterable[str], config: ScoringConfig | None = None) -> TokenClassification:
    cfg = config or ScoringConfig()
    flag_set = set(flags)
    spam = FLAG_CREATOR_DEPLOY_SPAM in flag_set
    sniper = FLAG_SNIPER_AUTOBUY in flag_set
    if score > cfg.legit_min_score:
        return TokenClassification.LEGIT
    if score <= cfg.scam_max_score or spam or sniper:
        if spam and sniper:
            return TokenClassification.BUNDLE_AUTOBUY_SCAM
        if spam:
            return TokenClassification.BUNDLE_SCAM
        if sniper:
            return TokenClassification.AUTOBUY_SCAM
        return TokenClassification.SCAM
    return TokenClassification.SUSPICIOUS


class RiskScorer:
    """Deterministic, additive scorer for new-token events.

    The scorer is pure: off-chain metadata and the creator's recent deploy count
    are resolved by the caller, which also records the deployment afterwards.
    """

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self._config = config or ScoringConfig()

    @property
    def config(self) -> ScoringConfig:
        return self._config

    def score(self, event: LaunchEvent, metadata: MetadataLookup, recent_deploys: int = 0) -> ScoreResult:
        cfg = self._config
        score = 0
        flags: list[str] = []

        if event.market_cap_sol > cfg.high_market_cap_sol:
            score += cfg.high_market_cap_points
            flags.append(FLAG_HIGH_MARKET_CAP)
        if event.v_sol_in_bonding_curve > cfg.virtual_sol_threshold:
            score += cfg.virtual_sol_points
        if event.v_tokens_in_bonding_curve > cfg.virtual_tokens_threshold:
            score += cfg.virtual_tokens_points

        if metadata.status == MetadataStatus.INVALID_URI:
            score -= cfg.invalid_uri_penalty
            flags.append(FLAG_INVALID_METADATA_URI)
        elif metadata.status == MetadataStatus.FAILED:
            score -= cfg.metadata_failure_penalty
            flags.append(FLAG_METADATA_FETCH_FAILED)
        elif metadata.status == MetadataStatus.ERROR:
            score -= cfg.metadata_failure_penalty
            flags.append(FLAG_METADATA_FETCH_ERROR)

        # Creator funds a near-zero buy in the mint transaction.
        if (
            event.initial_buy > 0
            and event.sol_amount is not None
            and event.sol_amount <= cfg.sniper_max_sol
        ):
            score -= cfg.sniper_penalty
            flags.append(FLAG_SNIPER_AUTOBUY)

        if recent_deploys >= cfg.deploy_spam_threshold:
            score -= cfg.deploy_spam_penalty
            flags.append(FLAG_CREATOR_DEPLOY_SPAM)

        classification = classify(score, flags, cfg)
        return ScoreResult(
            score=score,
            flags=flags,
            classification=classification,
            risk_level=risk_level_for(classification),
        )


__all__ = [
    "FLAG_CREATOR_DEPLOY_SPAM",
    "FLAG_HIGH_MARKET_CAP",
    "FLAG_INVALID_METADATA_URI",
    "FLAG_METADATA_FETCH_ERROR",
    "FLAG_METADATA_FETCH_FAILED",
    "FLAG_SNIPER_AUTOBUY",
    "RiskScorer",
    "classify",
    "risk_level_for",
]
