"""
Coordinated-activity detection from intra-address signals.

Only one address's history is available, so coordination with other
accounts is inferred from proxies: tight timing clusters, a dominant gas
price, round or repeated amounts, and gas prices that track network
conditions. Cross-address graph analysis is out of scope.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Sequence

from backend_txrisk.analysis_engine import stats
from backend_txrisk.analysis_engine.bot_behavior import ParameterType
from backend_txrisk.analysis_engine.models import RiskLevel, TransactionRecord, sort_by_time
from backend_txrisk.config.settings import CoordinationConfig
from backend_txrisk.txrisk_logging import get_logger

logger = get_logger(__name__)

INSUFFICIENT_HISTORY = "Insufficient transaction history for coordination analysis"


class CoordinationPatternType(str, Enum):
    SYNCHRONIZED_TIMING = "SYNCHRONIZED_TIMING"
    IDENTICAL_PARAMETERS = "IDENTICAL_PARAMETERS"
    COORDINATED_AMOUNTS = "COORDINATED_AMOUNTS"
    NETWORK_EFFECTS = "NETWORK_EFFECTS"


# Coordination-score points per pattern at full strength.
SCORE_WEIGHTS: MappingProxyType[CoordinationPatternType, float] = MappingProxyType({
    CoordinationPatternType.SYNCHRONIZED_TIMING: 30.0,
    CoordinationPatternType.IDENTICAL_PARAMETERS: 25.0,
    CoordinationPatternType.COORDINATED_AMOUNTS: 20.0,
    CoordinationPatternType.NETWORK_EFFECTS: 15.0,
})
# Extra risk points per pattern at full strength.
RISK_WEIGHTS: MappingProxyType[CoordinationPatternType, float] = MappingProxyType({
    CoordinationPatternType.SYNCHRONIZED_TIMING: 20.0,
    CoordinationPatternType.IDENTICAL_PARAMETERS: 25.0,
    CoordinationPatternType.COORDINATED_AMOUNTS: 15.0,
    CoordinationPatternType.NETWORK_EFFECTS: 10.0,
})
SYNC_GROUP_WEIGHT = 20.0
PARAMETER_MATCHING_WEIGHT = 15.0


@dataclass
class CoordinationPattern:
    pattern_type: CoordinationPatternType
    strength: float
    confidence: float
    description: str
    evidence: list[str]
    indicative_transactions: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern_type": self.pattern_type.value,
            "strength": self.strength,
            "confidence": self.confidence,
            "description": self.description,
            "evidence": list(self.evidence),
            "indicative_transactions": list(self.indicative_transactions),
        }


@dataclass
class SynchronizedTransaction:
    transactions: list[str]
    time_window: float
    synchronization_score: float
    suspicion_level: RiskLevel

    def to_dict(self) -> dict[str, Any]:
        return {
            "transactions": list(self.transactions),
            "time_window": self.time_window,
            "synchronization_score": self.synchronization_score,
            "suspicion_level": self.suspicion_level.value,
        }


@dataclass
class MatchingGroup:
    parameter: ParameterType
    value: str
    transaction_count: int
    percentage: float
    suspicion_score: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "parameter": self.parameter.value,
            "value": self.value,
            "transaction_count": self.transaction_count,
            "percentage": self.percentage,
            "suspicion_score": self.suspicion_score,
        }


@dataclass
class ParameterMatching:
    gas_price_matching: list[MatchingGroup] = field(default_factory=list)
    gas_limit_matching: list[MatchingGroup] = field(default_factory=list)
    amount_matching: list[MatchingGroup] = field(default_factory=list)
    overall_matching_score: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "gas_price_matching": [g.to_dict() for g in self.gas_price_matching],
            "gas_limit_matching": [g.to_dict() for g in self.gas_limit_matching],
            "amount_matching": [g.to_dict() for g in self.amount_matching],
            "overall_matching_score": self.overall_matching_score,
        }


@dataclass
class CoordinatedActivityResult:
    detected: bool
    confidence: float
    coordination_score: float
    coordination_patterns: list[CoordinationPattern]
    synchronized_transactions: list[SynchronizedTransaction]
    parameter_matching: ParameterMatching
    risk_score: float
    explanation: str
    evidence: list[str] = field(default_factory=list)

    @classmethod
    def empty(cls, explanation: str = INSUFFICIENT_HISTORY) -> CoordinatedActivityResult:
        return cls(
            detected=False,
            confidence=0.0,
            coordination_score=0.0,
            coordination_patterns=[],
            synchronized_transactions=[],
            parameter_matching=ParameterMatching(),
            risk_score=0.0,
            explanation=explanation,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "detected": self.detected,
            "confidence": self.confidence,
            "coordination_score": self.coordination_score,
            "coordination_patterns": [p.to_dict() for p in self.coordination_patterns],
            "synchronized_transactions": [s.to_dict() for s in self.synchronized_transactions],
            "parameter_matching": self.parameter_matching.to_dict(),
            "risk_score": self.risk_score,
            "explanation": self.explanation,
            "evidence": list(self.evidence),
        }


# --- patterns ---


def _synchronized_timing(
    transactions: Sequence[TransactionRecord],
    cfg: CoordinationConfig,
) -> CoordinationPattern | None:
    """Run-length clusters where each consecutive gap is within the sync window."""
    ordered = sort_by_time(transactions)
    clusters: list[list[TransactionRecord]] = []
    current = [ordered[0]]
    for prev, tx in zip(ordered, ordered[1:]):
        if tx.timestamp - prev.timestamp <= cfg.sync_window_seconds:
            current.append(tx)
            continue
        if len(current) >= cfg.sync_min_cluster:
            clusters.append(current)
        current = [tx]
    if len(current) >= cfg.sync_min_cluster:
        clusters.append(current)
    if not clusters:
        return None

    clustered = sum(len(c) for c in clusters)
    ratio = clustered / len(transactions)
    strength = min(100.0, ratio * 150)
    if strength < cfg.sync_min_strength:
        return None
    return CoordinationPattern(
        pattern_type=CoordinationPatternType.SYNCHRONIZED_TIMING,
        strength=strength,
        confidence=min(90.0, strength + 10),
        description=f"{len(clusters)} clusters of synchronized transactions detected",
        evidence=[
            f"{clustered} transactions in synchronized clusters",
            f"Synchronization ratio: {ratio * 100:.1f}%",
            f"Largest cluster: {max(len(c) for c in clusters)} transactions",
        ],
        indicative_transactions=[tx.hash for c in clusters for tx in c],
    )


def _identical_parameters(
    transactions: Sequence[TransactionRecord],
    cfg: CoordinationConfig,
) -> CoordinationPattern | None:
    groups: dict[str, list[TransactionRecord]] = defaultdict(list)
    for tx in transactions:
        groups[tx.gas_price].append(tx)
    # First-seen group wins ties.
    largest: list[TransactionRecord] = []
    for group in groups.values():
        if len(group) > len(largest):
            largest = group

    ratio = len(largest) / len(transactions)
    if ratio < cfg.identical_min_ratio or len(largest) < cfg.identical_min_size:
        return None
    return CoordinationPattern(
        pattern_type=CoordinationPatternType.IDENTICAL_PARAMETERS,
        strength=min(100.0, ratio * 125),
        confidence=85.0,
        description=f"{len(largest)} transactions with identical gas price suggesting coordination",
        evidence=[
            f"Gas price coordination: {ratio * 100:.1f}%",
            f"Identical gas price: {largest[0].gas_price} Gwei",
            f"{len(groups)} unique gas prices used",
        ],
        indicative_transactions=[tx.hash for tx in largest],
    )


def _is_round(amount: float) -> bool:
    return f"{amount:.6f}".endswith("000")


def _coordinated_amounts(
    transactions: Sequence[TransactionRecord],
    cfg: CoordinationConfig,
) -> CoordinationPattern | None:
    amounts = [a for a in (tx.amount for tx in transactions) if a > 0]
    if len(amounts) < cfg.amounts_min_count:
        return None

    round_ratio = sum(1 for a in amounts if _is_round(a)) / len(amounts)
    counts = Counter(round(a, 4) for a in amounts)
    max_count = max(counts.values())
    identical_ratio = max_count / len(amounts)

    strength = 0.0
    evidence: list[str] = []
    if round_ratio > 0.5:
        strength += round_ratio * 60
        evidence.append(f"{round_ratio * 100:.1f}% of transactions use round amounts")
    if identical_ratio > 0.3 and max_count >= cfg.amounts_min_count:
        strength += identical_ratio * 40
        evidence.append(f"{max_count} transactions with identical amounts")
    if strength < cfg.amounts_min_strength:
        return None
    return CoordinationPattern(
        pattern_type=CoordinationPatternType.COORDINATED_AMOUNTS,
        strength=min(100.0, strength),
        confidence=75.0,
        description="Coordinated transaction amounts suggest planned activity",
        evidence=evidence,
        indicative_transactions=[
            tx.hash for tx in transactions if counts.get(round(tx.amount, 4)) == max_count
        ],
    )


def _network_effects(
    transactions: Sequence[TransactionRecord],
    cfg: CoordinationConfig,
) -> CoordinationPattern | None:
    if len(transactions) < cfg.network_min_transactions:
        return None
    ordered = sort_by_time(transactions)
    changes = [
        (cur.gas_price_gwei - prev.gas_price_gwei) / prev.gas_price_gwei
        for prev, cur in zip(ordered, ordered[1:])
        if prev.gas_price_gwei != 0
    ]
    change_ratio = (
        sum(1 for c in changes if abs(c) > cfg.network_change_threshold) / len(changes)
        if changes
        else 0.0
    )
    high_gas = [tx for tx in ordered if tx.gas_price_gwei > cfg.high_gas_gwei]
    high_gas_ratio = len(high_gas) / len(ordered)

    strength = 0.0
    evidence: list[str] = []
    if change_ratio > 0.4:
        strength += change_ratio * 50
        evidence.append(
            f"{change_ratio * 100:.1f}% of transactions show significant gas price changes"
        )
    if high_gas_ratio > 0.7:
        strength += 30
        evidence.append(f"{high_gas_ratio * 100:.1f}% of transactions use high gas prices")
    if strength < cfg.network_min_strength:
        return None
    return CoordinationPattern(
        pattern_type=CoordinationPatternType.NETWORK_EFFECTS,
        strength=min(100.0, strength),
        confidence=60.0,
        description="Gas price patterns suggest coordination with network conditions",
        evidence=evidence,
        indicative_transactions=[tx.hash for tx in high_gas],
    )


def _sync_level(score: float) -> RiskLevel:
    if score > 90:
        return RiskLevel.CRITICAL
    if score > 75:
        return RiskLevel.HIGH
    if score > 50:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _synchronized_transactions(
    transactions: Sequence[TransactionRecord],
    cfg: CoordinationConfig,
) -> list[SynchronizedTransaction]:
    """Groups anchored at each transaction; a matched group is skipped over."""
    ordered = sort_by_time(transactions)
    groups: list[SynchronizedTransaction] = []
    i = 0
    while i < len(ordered) - 1:
        anchor = ordered[i]
        group = [anchor]
        for tx in ordered[i + 1:]:
            if tx.timestamp - anchor.timestamp > cfg.sync_window_seconds:
                break
            group.append(tx)
        if len(group) >= cfg.sync_min_cluster:
            window = float(group[-1].timestamp - group[0].timestamp)
            score = max(0.0, 100 - window / cfg.sync_window_seconds * 100)
            groups.append(
                SynchronizedTransaction(
                    transactions=[tx.hash for tx in group],
                    time_window=window,
                    synchronization_score=score,
                    suspicion_level=_sync_level(score),
                )
            )
            i += len(group) - 1
        i += 1
    return groups


def _matching_suspicion(percentage: float) -> float:
    if percentage > 70:
        return 90.0
    if percentage > 50:
        return 70.0
    if percentage > 30:
        return 50.0
    return 30.0


def _matching_groups(
    values: Sequence[str],
    parameter: ParameterType,
    cfg: CoordinationConfig,
) -> list[MatchingGroup]:
    groups = [
        MatchingGroup(
            parameter=parameter,
            value=value,
            transaction_count=count,
            percentage=count / len(values) * 100,
            suspicion_score=_matching_suspicion(count / len(values) * 100),
        )
        for value, count in Counter(values).items()
        if count >= cfg.matching_min_group
    ]
    groups.sort(key=lambda g: g.suspicion_score, reverse=True)
    return groups


def analyze_parameter_matching(
    transactions: Sequence[TransactionRecord],
    config: CoordinationConfig | None = None,
) -> ParameterMatching:
    """Exact-value repetition of gas price, gas limit and amount strings."""
    cfg = config or CoordinationConfig()
    gas_price = _matching_groups([tx.gas_price for tx in transactions], ParameterType.GAS_PRICE, cfg)
    gas_limit = _matching_groups(
        [tx.gas_used or "0" for tx in transactions], ParameterType.GAS_LIMIT, cfg
    )
    amount = _matching_groups([tx.value for tx in transactions], ParameterType.AMOUNT, cfg)
    every = gas_price + gas_limit + amount
    return ParameterMatching(
        gas_price_matching=gas_price,
        gas_limit_matching=gas_limit,
        amount_matching=amount,
        overall_matching_score=stats.mean(g.suspicion_score for g in every),
    )


# --- scoring ---


def _coordination_score(
    patterns: Sequence[CoordinationPattern],
    synchronized: Sequence[SynchronizedTransaction],
    matching: ParameterMatching,
) -> float:
    score = sum(p.strength / 100 * SCORE_WEIGHTS[p.pattern_type] for p in patterns)
    score += sum(s.synchronization_score / 100 * SYNC_GROUP_WEIGHT for s in synchronized)
    score += matching.overall_matching_score / 100 * PARAMETER_MATCHING_WEIGHT
    return min(100.0, score)


def _confidence(transaction_count: int, patterns: Sequence[CoordinationPattern]) -> float:
    confidence = min(40.0, transaction_count * 2.0)
    confidence += len({p.pattern_type for p in patterns}) * 15
    confidence += sum(10 for p in patterns if p.strength > 70)
    return min(100.0, confidence)


def _risk_score(score: float, patterns: Sequence[CoordinationPattern]) -> float:
    risk = score * 0.8
    risk += sum(p.strength / 100 * RISK_WEIGHTS[p.pattern_type] for p in patterns)
    return min(100.0, risk)


def _pattern_label(pattern_type: CoordinationPatternType) -> str:
    return pattern_type.value.replace("_", " ", 1).lower()


def _evidence(
    patterns: Sequence[CoordinationPattern],
    synchronized: Sequence[SynchronizedTransaction],
    matching: ParameterMatching,
) -> list[str]:
    evidence = [
        f"{_pattern_label(p.pattern_type)} pattern detected ({p.strength:.1f}% strength)"
        for p in patterns
    ]
    if synchronized:
        evidence.append(f"{len(synchronized)} synchronized transaction groups found")
    if matching.overall_matching_score > 50:
        evidence.append(f"High parameter matching score: {matching.overall_matching_score:.1f}%")
    return evidence


def _explanation(detected: bool, score: float, patterns: Sequence[CoordinationPattern]) -> str:
    if not detected:
        return (
            "No significant coordination patterns detected. "
            "Transaction behavior appears independent."
        )
    parts = [f"Coordination patterns detected (Score: {score:.1f}/100)."]
    if patterns:
        names = ", ".join(_pattern_label(p.pattern_type) for p in patterns)
        parts.append(
            f"Analysis identified {len(patterns)} coordination patterns including {names}."
        )
    if score > 80:
        parts.append("Strong evidence suggests coordinated activity with external entities.")
    elif score > 60:
        parts.append("Multiple indicators suggest possible coordination.")
    else:
        parts.append("Some patterns suggest potential coordination.")
    return " ".join(parts)


def detect_coordinated_activity(
    transactions: Sequence[TransactionRecord],
    config: CoordinationConfig | None = None,
) -> CoordinatedActivityResult:
    """
    Score intra-address signals of coordination with external actors.

    Requires config.min_transactions (3) transactions; fewer yields a
    not-detected result with an explanatory reason.
    """
    cfg = config or CoordinationConfig()
    if len(transactions) < cfg.min_transactions:
        return CoordinatedActivityResult.empty()

    patterns: list[CoordinationPattern] = []
    for check in (_synchronized_timing, _identical_parameters, _coordinated_amounts, _network_effects):
        pattern = check(transactions, cfg)
        if pattern is not None:
            patterns.append(pattern)
    synchronized = _synchronized_transactions(transactions, cfg)
    matching = analyze_parameter_matching(transactions, cfg)

    score = _coordination_score(patterns, synchronized, matching)
    detected = score > cfg.detection_score or any(
        p.strength > cfg.detection_strength for p in patterns
    )

    logger.debug(
        "coordination_scored",
        patterns=[p.pattern_type.value for p in patterns],
        synchronized_groups=len(synchronized),
        coordination_score=round(score, 2),
    )
    return CoordinatedActivityResult(
        detected=detected,
        confidence=_confidence(len(transactions), patterns),
        coordination_score=score,
        coordination_patterns=patterns,
        synchronized_transactions=synchronized,
        parameter_matching=matching,
        risk_score=_risk_score(score, patterns),
        explanation=_explanation(detected, score, patterns),
        evidence=_evidence(patterns, synchronized, matching),
    )
