"""
Wash-trading detection: self-reversing and circular trades.

Scans the time-sorted history for five signals: rapid reversals
(near-identical amounts traded back within an hour), amount matching
(identical amounts repeated inside two hours), suspicious pairs, greedy
circular chains, and timing coordination inside 5-minute buckets. The
signals are combined into one risk score with fixed per-pattern weights.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Sequence

from backend_txrisk.analysis_engine import stats
from backend_txrisk.analysis_engine.models import RiskLevel, TransactionRecord, sort_by_time
from backend_txrisk.config.settings import WashTradingConfig
from backend_txrisk.txrisk_logging import get_logger

logger = get_logger(__name__)

INSUFFICIENT_HISTORY = "Insufficient transaction history for wash trading analysis"


class WashPatternType(str, Enum):
    RAPID_REVERSAL = "RAPID_REVERSAL"
    CIRCULAR_FLOW = "CIRCULAR_FLOW"
    AMOUNT_MATCHING = "AMOUNT_MATCHING"
    TIMING_COORDINATION = "TIMING_COORDINATION"


# Risk points contributed by a pattern at 100% confidence; covers every WashPatternType.
PATTERN_WEIGHTS: MappingProxyType[WashPatternType, float] = MappingProxyType({
    WashPatternType.RAPID_REVERSAL: 25.0,
    WashPatternType.CIRCULAR_FLOW: 30.0,
    WashPatternType.AMOUNT_MATCHING: 20.0,
    WashPatternType.TIMING_COORDINATION: 15.0,
})
# Risk points per suspicious pair / circular chain at full suspicion.
PAIR_WEIGHT = 15.0
CHAIN_WEIGHT = 20.0


@dataclass
class WashTradingPattern:
    pattern_type: WashPatternType
    transactions: list[str]
    confidence: float
    description: str
    time_window: float
    amount_similarity: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern_type": self.pattern_type.value,
            "transactions": list(self.transactions),
            "confidence": self.confidence,
            "description": self.description,
            "time_window": self.time_window,
            "amount_similarity": self.amount_similarity,
        }


@dataclass
class TransactionPair:
    transaction1: str
    transaction2: str
    time_difference: float
    amount_similarity: float
    suspicion_score: float
    evidence: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction1": self.transaction1,
            "transaction2": self.transaction2,
            "time_difference": self.time_difference,
            "amount_similarity": self.amount_similarity,
            "suspicion_score": self.suspicion_score,
            "evidence": list(self.evidence),
        }


@dataclass
class TransactionChain:
    transactions: list[str]
    chain_length: int
    total_amount: float
    time_span: float
    circularity_score: float
    suspicion_level: RiskLevel

    def to_dict(self) -> dict[str, Any]:
        return {
            "transactions": list(self.transactions),
            "chain_length": self.chain_length,
            "total_amount": self.total_amount,
            "time_span": self.time_span,
            "circularity_score": self.circularity_score,
            "suspicion_level": self.suspicion_level.value,
        }


@dataclass
class WashTradingResult:
    """Wash-trading verdict for one address; explanation is always human-readable."""

    detected: bool
    confidence: float
    severity: RiskLevel
    patterns: list[WashTradingPattern]
    suspicious_transaction_pairs: list[TransactionPair]
    circular_transaction_chains: list[TransactionChain]
    risk_score: float
    explanation: str
    evidence: list[str] = field(default_factory=list)

    @classmethod
    def empty(cls, explanation: str = INSUFFICIENT_HISTORY) -> WashTradingResult:
        return cls(
            detected=False,
            confidence=0.0,
            severity=RiskLevel.LOW,
            patterns=[],
            suspicious_transaction_pairs=[],
            circular_transaction_chains=[],
            risk_score=0.0,
            explanation=explanation,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "detected": self.detected,
            "confidence": self.confidence,
            "severity": self.severity.value,
            "patterns": [p.to_dict() for p in self.patterns],
            "suspicious_transaction_pairs": [p.to_dict() for p in self.suspicious_transaction_pairs],
            "circular_transaction_chains": [c.to_dict() for c in self.circular_transaction_chains],
            "risk_score": self.risk_score,
            "explanation": self.explanation,
            "evidence": list(self.evidence),
        }


def _rapid_reversals(
    ordered: Sequence[TransactionRecord],
    cfg: WashTradingConfig,
) -> list[WashTradingPattern]:
    found: list[WashTradingPattern] = []
    for tx1, tx2, tx3 in zip(ordered, ordered[1:], ordered[2:]):
        s12 = stats.amount_similarity(tx1.amount, tx2.amount)
        s13 = stats.amount_similarity(tx1.amount, tx3.amount)
        window = tx3.timestamp - tx1.timestamp
        if (
            s12 > cfg.reversal_adjacent_similarity
            and s13 > cfg.reversal_outer_similarity
            and window < cfg.reversal_window_seconds
        ):
            found.append(
                WashTradingPattern(
                    pattern_type=WashPatternType.RAPID_REVERSAL,
                    transactions=[tx1.hash, tx2.hash, tx3.hash],
                    confidence=min(95.0, (s12 + s13) * 50),
                    description=(
                        "Rapid reversal pattern: similar amounts traded back and forth "
                        f"within {round(window / 60)} minutes"
                    ),
                    time_window=float(window),
                    amount_similarity=(s12 + s13) / 2,
                )
            )
    return found


def _amount_matching(
    ordered: Sequence[TransactionRecord],
    cfg: WashTradingConfig,
) -> list[WashTradingPattern]:
    groups: dict[float, list[TransactionRecord]] = defaultdict(list)
    for tx in ordered:
        groups[round(tx.amount, 4)].append(tx)

    found: list[WashTradingPattern] = []
    for amount, group in groups.items():
        if len(group) < cfg.matching_min_group or amount <= cfg.matching_min_amount:
            continue
        span = max(t.timestamp for t in group) - min(t.timestamp for t in group)
        if span >= cfg.matching_window_seconds:
            continue
        found.append(
            WashTradingPattern(
                pattern_type=WashPatternType.AMOUNT_MATCHING,
                transactions=[t.hash for t in group],
                confidence=min(90.0, len(group) * 20.0),
                description=(
                    f"{len(group)} transactions with identical amount ({amount:g} ETH) "
                    f"within {round(span / 60)} minutes"
                ),
                time_window=float(span),
                amount_similarity=1.0,
            )
        )
    return found


def _pair_score(
    tx1: TransactionRecord,
    tx2: TransactionRecord,
    similarity: float,
    time_difference: float,
) -> float:
    """40 for amount match, up to 30 for proximity, 20 for gas match, 10 for reversed direction."""
    score = similarity * 40
    score += max(0.0, 30 - (time_difference / 3600) * 30)
    score += stats.amount_similarity(tx1.gas_price_gwei, tx2.gas_price_gwei) * 20
    if tx1.to_address == tx2.from_address or tx1.from_address == tx2.to_address:
        score += 10
    return min(100.0, score)


def _suspicious_pairs(
    ordered: Sequence[TransactionRecord],
    cfg: WashTradingConfig,
) -> list[TransactionPair]:
    pairs: list[TransactionPair] = []
    for i, tx1 in enumerate(ordered):
        for tx2 in ordered[i + 1:]:
            dt = float(abs(tx2.timestamp - tx1.timestamp))
            a1, a2 = tx1.amount, tx2.amount
            if dt >= cfg.pair_window_seconds or a1 <= cfg.pair_min_amount or a2 <= cfg.pair_min_amount:
                continue
            similarity = stats.amount_similarity(a1, a2)
            if similarity <= cfg.pair_min_similarity:
                continue
            score = _pair_score(tx1, tx2, similarity, dt)
            if score <= cfg.pair_min_score:
                continue
            pairs.append(
                TransactionPair(
                    transaction1=tx1.hash,
                    transaction2=tx2.hash,
                    time_difference=dt,
                    amount_similarity=similarity,
                    suspicion_score=score,
                    evidence=[
                        f"Amount similarity: {similarity * 100:.1f}%",
                        f"Time difference: {round(dt / 60)} minutes",
                        f"Amounts: {a1:.4f} ETH, {a2:.4f} ETH",
                    ],
                )
            )
    pairs.sort(key=lambda p: p.suspicion_score, reverse=True)
    return pairs[: cfg.max_pairs]


def _circularity_score(chain: Sequence[TransactionRecord]) -> float:
    """Length (<=30) + amount consistency (<=40) + timing consistency (<=30)."""
    score = min(30.0, len(chain) * 5.0)
    amount_cv = stats.coefficient_of_variation([t.amount for t in chain], zero_mean_value=1.0)
    score += max(0.0, 40 - amount_cv * 40)
    gaps = [float(b.timestamp - a.timestamp) for a, b in zip(chain, chain[1:])]
    if gaps:
        gap_cv = stats.coefficient_of_variation(gaps, zero_mean_value=1.0)
        score += max(0.0, 30 - gap_cv * 30)
    return min(100.0, score)


def _suspicion_for_circularity(score: float) -> RiskLevel:
    if score > 90:
        return RiskLevel.CRITICAL
    if score > 80:
        return RiskLevel.HIGH
    if score > 70:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _circular_chains(
    ordered: Sequence[TransactionRecord],
    cfg: WashTradingConfig,
) -> list[TransactionChain]:
    chains: list[TransactionChain] = []
    for start in range(len(ordered) - 2):
        chain = [ordered[start]]
        for candidate in ordered[start + 1:]:
            if len(chain) >= cfg.chain_max_length:
                break
            tail = chain[-1]
            if (
                candidate.timestamp - tail.timestamp < cfg.chain_window_seconds
                and stats.amount_similarity(tail.amount, candidate.amount) > cfg.chain_min_similarity
            ):
                chain.append(candidate)
        if len(chain) < cfg.chain_min_length:
            continue
        circularity = _circularity_score(chain)
        if circularity <= cfg.chain_min_circularity:
            continue
        chains.append(
            TransactionChain(
                transactions=[t.hash for t in chain],
                chain_length=len(chain),
                total_amount=sum(t.amount for t in chain),
                time_span=float(chain[-1].timestamp - chain[0].timestamp),
                circularity_score=circularity,
                suspicion_level=_suspicion_for_circularity(circularity),
            )
        )
    chains.sort(key=lambda c: c.circularity_score, reverse=True)
    return chains[: cfg.max_chains]


def _timing_coordination(
    ordered: Sequence[TransactionRecord],
    cfg: WashTradingConfig,
) -> list[WashTradingPattern]:
    buckets: dict[int, list[TransactionRecord]] = defaultdict(list)
    for tx in ordered:
        buckets[(tx.timestamp // cfg.timing_bucket_seconds) * cfg.timing_bucket_seconds].append(tx)

    found: list[WashTradingPattern] = []
    for group in buckets.values():
        if len(group) < cfg.timing_min_group:
            continue
        cv = stats.coefficient_of_variation([t.amount for t in group])
        if cv >= cfg.timing_max_cv:
            continue
        found.append(
            WashTradingPattern(
                pattern_type=WashPatternType.TIMING_COORDINATION,
                transactions=[t.hash for t in group],
                confidence=min(85.0, (1 - cv) * 100),
                description=(
                    f"{len(group)} transactions with coordinated timing and similar "
                    "amounts in 5-minute window"
                ),
                time_window=float(cfg.timing_bucket_seconds),
                amount_similarity=1 - cv,
            )
        )
    return found


def _risk_score(
    patterns: Sequence[WashTradingPattern],
    pairs: Sequence[TransactionPair],
    chains: Sequence[TransactionChain],
) -> float:
    score = sum(p.confidence / 100 * PATTERN_WEIGHTS[p.pattern_type] for p in patterns)
    score += sum(p.suspicion_score / 100 * PAIR_WEIGHT for p in pairs)
    score += sum(c.circularity_score / 100 * CHAIN_WEIGHT for c in chains)
    return min(100.0, score)


def _confidence(
    patterns: Sequence[WashTradingPattern],
    pairs: Sequence[TransactionPair],
    chains: Sequence[TransactionChain],
    transaction_count: int,
) -> float:
    confidence = min(30.0, transaction_count * 2.0)
    confidence += len({p.pattern_type for p in patterns}) * 15
    if patterns:
        confidence += 20
    if pairs:
        confidence += 15
    if chains:
        confidence += 20
    return min(100.0, confidence)


def _severity(risk_score: float) -> RiskLevel:
    if risk_score > 90:
        return RiskLevel.CRITICAL
    if risk_score > 75:
        return RiskLevel.HIGH
    if risk_score > 50:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _explanation(
    detected: bool,
    risk_score: float,
    patterns: Sequence[WashTradingPattern],
    pairs: Sequence[TransactionPair],
    chains: Sequence[TransactionChain],
) -> str:
    if not detected:
        return "No significant wash trading patterns detected in transaction history."
    parts = [f"Wash trading risk detected (Score: {round(risk_score)}/100)."]
    if patterns:
        names = ", ".join(p.pattern_type.value.lower().replace("_", " ", 1) for p in patterns)
        parts.append(f"Found {len(patterns)} suspicious trading patterns including {names}.")
    if pairs:
        parts.append(
            f"Identified {len(pairs)} suspicious transaction pairs with high amount "
            "similarity and coordinated timing."
        )
    if chains:
        parts.append(f"Detected {len(chains)} potential circular transaction chains.")
    return " ".join(parts)


def detect_wash_trading(
    transactions: Sequence[TransactionRecord],
    config: WashTradingConfig | None = None,
) -> WashTradingResult:
    """
    Detect wash-trading signals in one address's history.

    Requires config.min_transactions (4) transactions; fewer yields a
    not-detected result with an explanatory reason.
    """
    cfg = config or WashTradingConfig()
    if len(transactions) < cfg.min_transactions:
        return WashTradingResult.empty()

    ordered = sort_by_time(transactions)
    patterns = _rapid_reversals(ordered, cfg) + _amount_matching(ordered, cfg)
    pairs = _suspicious_pairs(ordered, cfg)
    chains = _circular_chains(ordered, cfg)
    patterns += _timing_coordination(ordered, cfg)

    risk_score = _risk_score(patterns, pairs, chains)
    detected = (
        risk_score > cfg.detection_score
        or len(patterns) > cfg.detection_patterns
        or len(pairs) > cfg.detection_pairs
    )

    evidence: list[str] = []
    if patterns:
        evidence.append(f"{len(patterns)} suspicious trading patterns detected")
    if pairs:
        evidence.append(f"{len(pairs)} suspicious transaction pairs identified")
    if chains:
        evidence.append(f"{len(chains)} circular transaction chains found")

    logger.debug(
        "wash_trading_scored",
        patterns=len(patterns),
        pairs=len(pairs),
        chains=len(chains),
        risk_score=round(risk_score, 2),
    )
    return WashTradingResult(
        detected=detected,
        confidence=_confidence(patterns, pairs, chains, len(transactions)),
        severity=_severity(risk_score),
        patterns=patterns,
        suspicious_transaction_pairs=pairs,
        circular_transaction_chains=chains,
        risk_score=risk_score,
        explanation=_explanation(detected, risk_score, patterns, pairs, chains),
        evidence=evidence,
    )
