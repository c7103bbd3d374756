"""
Bot-behavior detection through timing and parameter analysis.

Automated senders leave two fingerprints: mechanically regular timing
(low interval CV, one dominant interval, bursts) and repeated transaction
parameters (same gas price, gas limit, or amount). Both are scored 0-100
and blended into a bot probability.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Sequence

from backend_txrisk.analysis_engine import stats
from backend_txrisk.analysis_engine.models import RiskLevel, TransactionRecord, sort_by_time
from backend_txrisk.config.settings import BotBehaviorConfig
from backend_txrisk.txrisk_logging import get_logger

logger = get_logger(__name__)

INSUFFICIENT_HISTORY = "Insufficient transaction history for bot behavior analysis"


class BotPatternType(str, Enum):
    REGULAR_INTERVALS = "REGULAR_INTERVALS"
    IDENTICAL_PARAMETERS = "IDENTICAL_PARAMETERS"
    BURST_ACTIVITY = "BURST_ACTIVITY"
    MECHANICAL_PRECISION = "MECHANICAL_PRECISION"


class ParameterType(str, Enum):
    GAS_PRICE = "GAS_PRICE"
    GAS_LIMIT = "GAS_LIMIT"
    AMOUNT = "AMOUNT"


# Extra risk points per pattern at full strength; covers every BotPatternType.
PATTERN_RISK: MappingProxyType[BotPatternType, float] = MappingProxyType({
    BotPatternType.REGULAR_INTERVALS: 15.0,
    BotPatternType.IDENTICAL_PARAMETERS: 20.0,
    BotPatternType.BURST_ACTIVITY: 25.0,
    BotPatternType.MECHANICAL_PRECISION: 30.0,
})

# Human-likeness penalty per burst, by suspicion level.
BURST_PENALTY: MappingProxyType[RiskLevel, float] = MappingProxyType({
    RiskLevel.CRITICAL: 30.0,
    RiskLevel.HIGH: 20.0,
    RiskLevel.MEDIUM: 10.0,
    RiskLevel.LOW: 0.0,
})


@dataclass
class BurstPattern:
    start_time: int
    end_time: int
    transaction_count: int
    average_interval: float
    burst_intensity: float
    """Transactions per minute inside the window."""
    suspicion_level: RiskLevel

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_time": self.start_time,
            "end_time": self.end_time,
            "transaction_count": self.transaction_count,
            "average_interval": self.average_interval,
            "burst_intensity": self.burst_intensity,
            "suspicion_level": self.suspicion_level.value,
        }


@dataclass
class BotTimingAnalysis:
    interval_consistency: float = 0.0
    average_interval: float = 0.0
    interval_variance: float = 0.0
    coefficient_of_variation: float = 0.0
    burst_patterns: list[BurstPattern] = field(default_factory=list)
    regularity_score: float = 0.0
    human_like_score: float = 100.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "interval_consistency": self.interval_consistency,
            "average_interval": self.average_interval,
            "interval_variance": self.interval_variance,
            "coefficient_of_variation": self.coefficient_of_variation,
            "burst_patterns": [b.to_dict() for b in self.burst_patterns],
            "regularity_score": self.regularity_score,
            "human_like_score": self.human_like_score,
        }


@dataclass
class ParameterGroup:
    parameter_type: ParameterType
    value: str
    transaction_count: int
    percentage: float
    suspicion_level: RiskLevel

    def to_dict(self) -> dict[str, Any]:
        return {
            "parameter_type": self.parameter_type.value,
            "value": self.value,
            "transaction_count": self.transaction_count,
            "percentage": self.percentage,
            "suspicion_level": self.suspicion_level.value,
        }


@dataclass
class ParameterConsistency:
    gas_price_consistency: float = 0.0
    gas_limit_consistency: float = 0.0
    amount_pattern_consistency: float = 0.0
    identical_parameter_groups: list[ParameterGroup] = field(default_factory=list)
    overall_consistency_score: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "gas_price_consistency": self.gas_price_consistency,
            "gas_limit_consistency": self.gas_limit_consistency,
            "amount_pattern_consistency": self.amount_pattern_consistency,
            "identical_parameter_groups": [g.to_dict() for g in self.identical_parameter_groups],
            "overall_consistency_score": self.overall_consistency_score,
        }


@dataclass
class BotBehaviorPattern:
    pattern_type: BotPatternType
    strength: float
    confidence: float
    description: str
    evidence: list[str]
    affected_transactions: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern_type": self.pattern_type.value,
            "strength": self.strength,
            "confidence": self.confidence,
            "description": self.description,
            "evidence": list(self.evidence),
            "affected_transactions": list(self.affected_transactions),
        }


@dataclass
class BotBehaviorResult:
    detected: bool
    confidence: float
    bot_probability: float
    behavior_patterns: list[BotBehaviorPattern]
    timing_analysis: BotTimingAnalysis
    parameter_consistency: ParameterConsistency
    risk_score: float
    explanation: str
    evidence: list[str] = field(default_factory=list)

    @classmethod
    def empty(cls, explanation: str = INSUFFICIENT_HISTORY) -> BotBehaviorResult:
        return cls(
            detected=False,
            confidence=0.0,
            bot_probability=0.0,
            behavior_patterns=[],
            timing_analysis=BotTimingAnalysis(),
            parameter_consistency=ParameterConsistency(),
            risk_score=0.0,
            explanation=explanation,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "detected": self.detected,
            "confidence": self.confidence,
            "bot_probability": self.bot_probability,
            "behavior_patterns": [p.to_dict() for p in self.behavior_patterns],
            "timing_analysis": self.timing_analysis.to_dict(),
            "parameter_consistency": self.parameter_consistency.to_dict(),
            "risk_score": self.risk_score,
            "explanation": self.explanation,
            "evidence": list(self.evidence),
        }


# --- timing ---


def _regularity(gaps: Sequence[float], bucket: float) -> float:
    """Share of intervals equal to the most common (minute-rounded) interval, x100."""
    if len(gaps) < 2:
        return 0.0
    if len(set(gaps)) == 1:
        return 100.0
    counts = Counter(round(g / bucket) * bucket for g in gaps)
    return max(counts.values()) / len(gaps) * 100


def _burst_level(intensity: float) -> RiskLevel:
    if intensity > 2:
        return RiskLevel.CRITICAL
    if intensity > 1:
        return RiskLevel.HIGH
    if intensity > 0.5:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _bursts(ordered: Sequence[TransactionRecord], cfg: BotBehaviorConfig) -> list[BurstPattern]:
    """Sliding window from each transaction; a matched window is skipped over."""
    bursts: list[BurstPattern] = []
    i = 0
    while i < len(ordered):
        start = ordered[i].timestamp
        end = start + int(cfg.burst_window_seconds)
        window = [t for t in ordered if start <= t.timestamp <= end]
        if len(window) >= cfg.burst_min_transactions:
            intensity = len(window) / cfg.burst_window_seconds * 60
            gaps = [float(b.timestamp - a.timestamp) for a, b in zip(window, window[1:])]
            bursts.append(
                BurstPattern(
                    start_time=start,
                    end_time=end,
                    transaction_count=len(window),
                    average_interval=stats.mean(gaps),
                    burst_intensity=intensity,
                    suspicion_level=_burst_level(intensity),
                )
            )
            i += len(window) - 1
        i += 1
    return bursts


def _human_like(cv: float, regularity: float, bursts: Sequence[BurstPattern]) -> float:
    score = 100.0 - regularity * 0.5
    if cv < 0.1:
        score -= 40
    elif cv < 0.3:
        score -= 20
    score -= sum(BURST_PENALTY[b.suspicion_level] for b in bursts)
    if 1.0 < cv < 3.0:
        score += 10
    return stats.clamp(score)


def analyze_timing(
    transactions: Sequence[TransactionRecord],
    config: BotBehaviorConfig | None = None,
) -> BotTimingAnalysis:
    """Timing fingerprint of a history: consistency, regularity, bursts, human-likeness."""
    cfg = config or BotBehaviorConfig()
    ordered = sort_by_time(transactions)
    gaps = [float(b.timestamp - a.timestamp) for a, b in zip(ordered, ordered[1:])]
    if not gaps:
        return BotTimingAnalysis()
    cv = stats.coefficient_of_variation(gaps)
    regularity = _regularity(gaps, cfg.regularity_bucket_seconds)
    bursts = _bursts(ordered, cfg)
    return BotTimingAnalysis(
        interval_consistency=max(0.0, 100 - cv * 100),
        average_interval=stats.mean(gaps),
        interval_variance=stats.variance(gaps),
        coefficient_of_variation=cv,
        burst_patterns=bursts,
        regularity_score=regularity,
        human_like_score=_human_like(cv, regularity, bursts),
    )


# --- parameters ---


def _field_consistency(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    if len(set(values)) == 1:
        return 100.0
    return max(0.0, 100 - stats.coefficient_of_variation(values) * 100)


def _amount_pattern_consistency(amounts: Sequence[float]) -> float:
    """Repeated-amount ratio, floored at 50 when sorted amounts form an arithmetic progression."""
    if len(amounts) < 3:
        return 0.0
    counts = Counter(round(a, 4) for a in amounts)
    pattern_ratio = max(counts.values()) / len(amounts)
    ordered = sorted(amounts)
    diffs = [b - a for a, b in zip(ordered, ordered[1:])]
    progression = 50.0 if stats.coefficient_of_variation(diffs) < 0.1 else 0.0
    return max(pattern_ratio * 100, progression)


def _group_level(parameter: ParameterType, percentage: float) -> RiskLevel:
    if parameter is ParameterType.GAS_PRICE:
        bands = ((80, RiskLevel.CRITICAL), (60, RiskLevel.HIGH), (40, RiskLevel.MEDIUM))
    elif parameter is ParameterType.GAS_LIMIT:
        bands = ((70, RiskLevel.HIGH), (50, RiskLevel.MEDIUM))
    else:
        bands = ((60, RiskLevel.CRITICAL), (40, RiskLevel.HIGH), (25, RiskLevel.MEDIUM))
    for bound, level in bands:
        if percentage > bound:
            return level
    return RiskLevel.LOW


def _identical_groups(
    transactions: Sequence[TransactionRecord],
    cfg: BotBehaviorConfig,
) -> list[ParameterGroup]:
    n = len(transactions)
    keyed: list[tuple[ParameterType, Counter]] = [
        (ParameterType.GAS_PRICE, Counter(tx.gas_price for tx in transactions)),
        (ParameterType.GAS_LIMIT, Counter(tx.gas_used or "0" for tx in transactions)),
        (ParameterType.AMOUNT, Counter(str(round(tx.amount, 4)) for tx in transactions)),
    ]
    groups: list[ParameterGroup] = []
    for parameter, counts in keyed:
        for value, count in counts.items():
            if count < cfg.identical_min_count:
                continue
            if parameter is ParameterType.AMOUNT and float(value) <= 0:
                continue
            percentage = count / n * 100
            groups.append(
                ParameterGroup(
                    parameter_type=parameter,
                    value=value,
                    transaction_count=count,
                    percentage=percentage,
                    suspicion_level=_group_level(parameter, percentage),
                )
            )
    groups.sort(key=lambda g: g.percentage, reverse=True)
    return groups


def analyze_parameter_consistency(
    transactions: Sequence[TransactionRecord],
    config: BotBehaviorConfig | None = None,
) -> ParameterConsistency:
    """How repetitive gas price, gas limit and amounts are across the history."""
    cfg = config or BotBehaviorConfig()
    gas_price = _field_consistency([tx.gas_price_gwei for tx in transactions])
    gas_limit = _field_consistency([float(tx.gas_used_int) for tx in transactions])
    amount = _amount_pattern_consistency([tx.amount for tx in transactions])
    return ParameterConsistency(
        gas_price_consistency=gas_price,
        gas_limit_consistency=gas_limit,
        amount_pattern_consistency=amount,
        identical_parameter_groups=_identical_groups(transactions, cfg),
        overall_consistency_score=(gas_price + gas_limit + amount) / 3,
    )


# --- patterns and scoring ---


def _patterns(
    transactions: Sequence[TransactionRecord],
    timing: BotTimingAnalysis,
    params: ParameterConsistency,
    cfg: BotBehaviorConfig,
) -> list[BotBehaviorPattern]:
    hashes = [tx.hash for tx in transactions]
    patterns: list[BotBehaviorPattern] = []

    if timing.interval_consistency > cfg.regular_intervals_threshold:
        patterns.append(
            BotBehaviorPattern(
                pattern_type=BotPatternType.REGULAR_INTERVALS,
                strength=timing.interval_consistency,
                confidence=90.0,
                description=(
                    "Highly regular transaction intervals "
                    f"({round(timing.average_interval / 60)} minutes average)"
                ),
                evidence=[
                    f"Interval consistency: {timing.interval_consistency:.1f}%",
                    f"Coefficient of variation: {timing.coefficient_of_variation:.3f}",
                ],
                affected_transactions=list(hashes),
            )
        )

    if params.overall_consistency_score > cfg.identical_parameters_threshold:
        patterns.append(
            BotBehaviorPattern(
                pattern_type=BotPatternType.IDENTICAL_PARAMETERS,
                strength=params.overall_consistency_score,
                confidence=85.0,
                description="High consistency in transaction parameters suggests automated behavior",
                evidence=[
                    f"Gas price consistency: {params.gas_price_consistency:.1f}%",
                    f"Amount pattern consistency: {params.amount_pattern_consistency:.1f}%",
                    f"{len(params.identical_parameter_groups)} identical parameter groups found",
                ],
                affected_transactions=list(hashes),
            )
        )

    intense = [
        b for b in timing.burst_patterns
        if b.suspicion_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
    ]
    if intense:
        max_intensity = max(b.burst_intensity for b in intense)
        patterns.append(
            BotBehaviorPattern(
                pattern_type=BotPatternType.BURST_ACTIVITY,
                strength=min(100.0, max_intensity * 50),
                confidence=80.0,
                description=f"{len(intense)} burst patterns detected with high transaction intensity",
                evidence=[
                    f"Maximum burst intensity: {max_intensity:.2f} transactions/minute",
                    f"Total burst patterns: {len(timing.burst_patterns)}",
                ],
                affected_transactions=list(hashes),
            )
        )

    if (
        timing.regularity_score > cfg.mechanical_regularity_threshold
        and params.overall_consistency_score > cfg.mechanical_consistency_threshold
    ):
        patterns.append(
            BotBehaviorPattern(
                pattern_type=BotPatternType.MECHANICAL_PRECISION,
                strength=(timing.regularity_score + params.overall_consistency_score) / 2,
                confidence=95.0,
                description=(
                    "Mechanical precision in both timing and parameters indicates automated behavior"
                ),
                evidence=[
                    f"Timing regularity: {timing.regularity_score:.1f}%",
                    f"Parameter consistency: {params.overall_consistency_score:.1f}%",
                    f"Human-like score: {timing.human_like_score:.1f}%",
                ],
                affected_transactions=list(hashes),
            )
        )
    return patterns


def _probability(
    timing: BotTimingAnalysis,
    params: ParameterConsistency,
    patterns: Sequence[BotBehaviorPattern],
) -> float:
    timing_score = (
        timing.interval_consistency * 0.4
        + timing.regularity_score * 0.3
        + (100 - timing.human_like_score) * 0.3
    )
    probability = timing_score * 0.4 + params.overall_consistency_score * 0.3
    if patterns:
        probability += stats.mean(p.strength for p in patterns) * 0.3
    return min(100.0, probability)


def _confidence(
    transaction_count: int,
    patterns: Sequence[BotBehaviorPattern],
    timing: BotTimingAnalysis,
) -> float:
    confidence = min(40.0, transaction_count * 2.0)
    confidence += len(patterns) * 15
    confidence += sum(10 for p in patterns if p.strength > 80)
    if timing.interval_consistency > 0:
        confidence += 20
    return min(100.0, confidence)


def _risk_score(probability: float, patterns: Sequence[BotBehaviorPattern]) -> float:
    risk = probability * 0.7
    risk += sum(p.strength / 100 * PATTERN_RISK[p.pattern_type] for p in patterns)
    return min(100.0, risk)


def _pattern_label(pattern_type: BotPatternType) -> str:
    return pattern_type.value.replace("_", " ", 1).lower()


def _evidence(
    patterns: Sequence[BotBehaviorPattern],
    timing: BotTimingAnalysis,
    params: ParameterConsistency,
) -> list[str]:
    evidence: list[str] = []
    if timing.interval_consistency > 70:
        evidence.append(f"High timing consistency: {timing.interval_consistency:.1f}%")
    if timing.human_like_score < 30:
        evidence.append(f"Low human-like behavior score: {timing.human_like_score:.1f}%")
    if params.overall_consistency_score > 70:
        evidence.append(f"High parameter consistency: {params.overall_consistency_score:.1f}%")
    for p in patterns:
        evidence.append(f"{_pattern_label(p.pattern_type)} pattern detected ({p.strength:.1f}% strength)")
    if timing.burst_patterns:
        evidence.append(f"{len(timing.burst_patterns)} burst activity patterns detected")
    return evidence


def _explanation(
    detected: bool,
    probability: float,
    patterns: Sequence[BotBehaviorPattern],
) -> str:
    if not detected:
        return (
            "No significant bot behavior patterns detected. "
            "Transaction patterns appear consistent with human behavior."
        )
    parts = [f"Bot behavior detected with {probability:.1f}% probability."]
    if patterns:
        names = ", ".join(_pattern_label(p.pattern_type) for p in patterns)
        parts.append(f"Analysis identified {len(patterns)} suspicious patterns including {names}.")
    if probability > 90:
        parts.append("Strong evidence suggests automated trading behavior.")
    elif probability > 80:
        parts.append("Multiple indicators suggest likely automated behavior.")
    else:
        parts.append("Some indicators suggest possible automated behavior.")
    return " ".join(parts)


def detect_bot_behavior(
    transactions: Sequence[TransactionRecord],
    config: BotBehaviorConfig | None = None,
) -> BotBehaviorResult:
    """
    Score how automated one address's activity looks.

    Requires config.min_transactions (5) transactions; fewer yields a
    not-detected result with neutral timing (human-like score 100).
    """
    cfg = config or BotBehaviorConfig()
    if len(transactions) < cfg.min_transactions:
        return BotBehaviorResult.empty()

    timing = analyze_timing(transactions, cfg)
    params = analyze_parameter_consistency(transactions, cfg)
    patterns = _patterns(transactions, timing, params, cfg)
    probability = _probability(timing, params, patterns)
    detected = probability > cfg.detection_probability or any(
        p.strength > cfg.detection_strength for p in patterns
    )

    logger.debug(
        "bot_behavior_scored",
        patterns=[p.pattern_type.value for p in patterns],
        bot_probability=round(probability, 2),
        human_like_score=round(timing.human_like_score, 2),
    )
    return BotBehaviorResult(
        detected=detected,
        confidence=_confidence(len(transactions), patterns, timing),
        bot_probability=probability,
        behavior_patterns=patterns,
        timing_analysis=timing,
        parameter_consistency=params,
        risk_score=_risk_score(probability, patterns),
        explanation=_explanation(detected, probability, patterns),
        evidence=_evidence(patterns, timing, params),
    )
