"""
Per-transaction analysis against the address's own history.

Scores one transaction for concentration, gas and timing risk, rates its
gas price, places it in the timing pattern of the history, and classifies
its sophistication and intent. Also hosts the history-wide temporal
pattern analysis and gas efficiency recommendations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Sequence

from backend_txrisk.analysis_engine import stats
from backend_txrisk.analysis_engine.models import RiskLevel, TransactionRecord, sort_by_time
from backend_txrisk.analytics.categorizer import (
    SophisticationLevel,
    TransactionCategory,
    categorize_transaction,
    lookup_protocol,
)
from backend_txrisk.config.settings import AnalyzerConfig
from backend_txrisk.txrisk_logging import get_logger

logger = get_logger(__name__)

SEVERITY_WEIGHTS: Mapping[RiskLevel, int] = MappingProxyType({
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
    RiskLevel.CRITICAL: 4,
})

# Protocol-name keywords, matched by substring in this order.
PROTOCOL_SOPHISTICATION: tuple[tuple[str, SophisticationLevel], ...] = (
    ("uniswap", SophisticationLevel.INTERMEDIATE),
    ("sushiswap", SophisticationLevel.INTERMEDIATE),
    ("1inch", SophisticationLevel.ADVANCED),
    ("curve", SophisticationLevel.ADVANCED),
    ("aave", SophisticationLevel.ADVANCED),
    ("compound", SophisticationLevel.ADVANCED),
    ("maker", SophisticationLevel.EXPERT),
    ("lido", SophisticationLevel.INTERMEDIATE),
    ("rocket pool", SophisticationLevel.ADVANCED),
    ("eth 2.0 staking", SophisticationLevel.INTERMEDIATE),
    ("yearn", SophisticationLevel.EXPERT),
)

# Lending protocols treated as long-term positions.
INVESTMENT_PROTOCOLS = ("aave", "compound")

HOUR_SECONDS = 3600
DAY_SECONDS = 86400


class TransactionRiskType(str, Enum):
    CONCENTRATION = "CONCENTRATION"
    VOLATILITY = "VOLATILITY"
    TIMING = "TIMING"
    AMOUNT = "AMOUNT"
    FREQUENCY = "FREQUENCY"
    PROTOCOL = "PROTOCOL"


class GasRating(str, Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    AVERAGE = "AVERAGE"
    POOR = "POOR"


class TransactionTiming(str, Enum):
    REGULAR = "REGULAR"
    IRREGULAR = "IRREGULAR"
    BURST = "BURST"
    ISOLATED = "ISOLATED"


class ActivityPattern(str, Enum):
    REGULAR = "REGULAR"
    SPORADIC = "SPORADIC"
    BURST = "BURST"
    DECLINING = "DECLINING"
    GROWING = "GROWING"


class Intent(str, Enum):
    TRADING = "TRADING"
    INVESTMENT = "INVESTMENT"
    UTILITY = "UTILITY"
    SPECULATION = "SPECULATION"
    ARBITRAGE = "ARBITRAGE"


@dataclass(frozen=True)
class MarketContext:
    average_gas_price: float
    """Network average, Gwei."""
    network_congestion: float = 0.0


@dataclass
class TransactionRiskFactor:
    type: TransactionRiskType
    severity: RiskLevel
    score: float
    description: str
    indicators: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "score": self.score,
            "description": self.description,
            "indicators": list(self.indicators),
        }


@dataclass
class TransactionAnalysis:
    hash: str
    timestamp: int
    value: str
    gas_price: str
    gas_used: str
    risk_score: float
    risk_factors: list[TransactionRiskFactor]
    gas_efficiency_score: float
    gas_optimization_rating: GasRating
    category: TransactionCategory
    subcategory: str | None
    protocol_name: str | None
    timing_consistency: float
    is_outlier: bool
    temporal_pattern: TransactionTiming
    sophistication_level: SophisticationLevel
    intent_classification: Intent

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "timestamp": self.timestamp,
            "value": self.value,
            "gas_price": self.gas_price,
            "gas_used": self.gas_used,
            "risk_score": self.risk_score,
            "risk_factors": [f.to_dict() for f in self.risk_factors],
            "gas_efficiency_score": self.gas_efficiency_score,
            "gas_optimization_rating": self.gas_optimization_rating.value,
            "category": self.category.value,
            "subcategory": self.subcategory,
            "protocol_name": self.protocol_name,
            "timing_consistency": self.timing_consistency,
            "is_outlier": self.is_outlier,
            "temporal_pattern": self.temporal_pattern.value,
            "sophistication_level": self.sophistication_level.value,
            "intent_classification": self.intent_classification.value,
        }


@dataclass
class TemporalPatternAnalysis:
    consistency_score: float
    pattern_type: ActivityPattern
    average_interval_hours: float
    peak_activity_hours: list[int] = field(default_factory=list)
    """UTC hours."""
    anomalous_transactions: list[TransactionRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "consistency_score": self.consistency_score,
            "pattern_type": self.pattern_type.value,
            "average_interval_hours": self.average_interval_hours,
            "peak_activity_hours": list(self.peak_activity_hours),
            "anomalous_transactions": [tx.hash for tx in self.anomalous_transactions],
        }


@dataclass
class EfficiencyMetrics:
    gas_efficiency_score: float
    average_gas_price: float
    gas_optimization_level: GasRating
    timing_optimization: float
    cost_savings_potential: float
    """Percentage of transactions priced above the GOOD band."""
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "gas_efficiency_score": self.gas_efficiency_score,
            "average_gas_price": self.average_gas_price,
            "gas_optimization_level": self.gas_optimization_level.value,
            "timing_optimization": self.timing_optimization,
            "cost_savings_potential": self.cost_savings_potential,
            "recommendations": list(self.recommendations),
        }


def _risk_factors(
    tx: TransactionRecord,
    history: Sequence[TransactionRecord],
    cfg: AnalyzerConfig,
) -> list[TransactionRiskFactor]:
    factors: list[TransactionRiskFactor] = []

    total_volume = sum(h.amount for h in history)
    ratio = tx.amount / total_volume if total_volume > 0 else 0.0
    if ratio > cfg.concentration_ratio:
        factors.append(TransactionRiskFactor(
            type=TransactionRiskType.CONCENTRATION,
            severity=RiskLevel.HIGH,
            score=min(100.0, ratio * 100),
            description="High concentration of funds in single transaction",
            indicators=[f"Transaction represents {ratio * 100:.1f}% of total volume"],
        ))

    gas = tx.gas_price_gwei
    avg_gas = stats.mean(h.gas_price_gwei for h in history) if history else gas
    deviation = abs(gas - avg_gas) / avg_gas if avg_gas > 0 else 0.0
    if deviation > cfg.gas_deviation_medium:
        direction = "significantly higher" if gas > avg_gas else "significantly lower"
        factors.append(TransactionRiskFactor(
            type=TransactionRiskType.VOLATILITY,
            severity=RiskLevel.HIGH if deviation > cfg.gas_deviation_high else RiskLevel.MEDIUM,
            score=min(100.0, deviation * 20),
            description="Unusual gas price compared to user history",
            indicators=[f"Gas price {direction} than average"],
        ))

    if len(history) > 1:
        ordered = sort_by_time(history)
        avg_interval = stats.mean(stats.intervals(h.timestamp for h in ordered))
        if avg_interval > 0:
            gap = tx.timestamp - ordered[-1].timestamp
            timing_deviation = abs(gap - avg_interval) / avg_interval
            if timing_deviation > cfg.timing_deviation_medium:
                factors.append(TransactionRiskFactor(
                    type=TransactionRiskType.TIMING,
                    severity=(
                        RiskLevel.HIGH
                        if timing_deviation > cfg.timing_deviation_high
                        else RiskLevel.MEDIUM
                    ),
                    score=min(100.0, timing_deviation * 10),
                    description="Unusual timing pattern compared to historical behavior",
                    indicators=["Transaction timing deviates significantly from normal pattern"],
                ))
    return factors


def _overall_risk(factors: Sequence[TransactionRiskFactor]) -> float:
    """Severity-weighted mean of factor scores; 0 with no factors."""
    total_weight = sum(SEVERITY_WEIGHTS[f.severity] for f in factors)
    if total_weight == 0:
        return 0.0
    weighted = sum(f.score * SEVERITY_WEIGHTS[f.severity] for f in factors)
    return float(round(weighted / total_weight))


def gas_efficiency(
    tx: TransactionRecord,
    market_context: MarketContext | None = None,
    config: AnalyzerConfig | None = None,
) -> tuple[float, GasRating]:
    """
    Rate a transaction's gas price.

    Returns (score, rating). Score is banded by Gwei price and, with a market
    context, shifted by up to +/-20 towards how far the price sits below or
    above the market average; always rounded into [0, 100].
    """
    cfg = config or AnalyzerConfig()
    g = tx.gas_price_gwei
    excellent, good, average = cfg.gas_excellent_gwei, cfg.gas_good_gwei, cfg.gas_average_gwei

    if g <= excellent:
        rating = GasRating.EXCELLENT
        score = 90 + (excellent - g) / excellent * 10
    elif g <= good:
        rating = GasRating.GOOD
        score = 70 + (good - g) / (good - excellent) * 20
    elif g <= average:
        rating = GasRating.AVERAGE
        score = 40 + (average - g) / (average - good) * 30
    else:
        rating = GasRating.POOR
        score = max(0.0, 40 - (g - average) / average * 40)

    if market_context is not None and market_context.average_gas_price > 0:
        market = market_context.average_gas_price
        adjustment = (market - g) / market * cfg.market_adjustment_max
        adjustment = max(-cfg.market_adjustment_max, min(cfg.market_adjustment_max, adjustment))
        score += adjustment

    return float(round(stats.clamp(score))), rating


def _temporal_position(
    tx: TransactionRecord,
    history: Sequence[TransactionRecord],
    cfg: AnalyzerConfig,
) -> tuple[float, bool, TransactionTiming]:
    if len(history) < 2:
        return 0.0, False, TransactionTiming.ISOLATED

    ordered = sort_by_time([*history, tx])
    gaps = stats.intervals(t.timestamp for t in ordered)
    avg_gap = stats.mean(gaps)
    sigma = stats.std_dev(gaps)
    cv = stats.coefficient_of_variation(gaps)
    consistency = stats.clamp(100 - cv * 50)

    earlier = [h.timestamp for h in history if h.timestamp <= tx.timestamp]
    is_outlier = False
    if earlier:
        own_gap = tx.timestamp - max(earlier)
        is_outlier = abs(own_gap - avg_gap) > cfg.outlier_std_multiplier * sigma

    if cv < cfg.regular_cv:
        pattern = TransactionTiming.REGULAR
    elif cv > cfg.burst_cv:
        recent = sum(
            1 for t in ordered if 0 <= tx.timestamp - t.timestamp < cfg.burst_window_seconds
        )
        pattern = (
            TransactionTiming.BURST if recent > cfg.burst_min_recent else TransactionTiming.IRREGULAR
        )
    else:
        pattern = TransactionTiming.IRREGULAR

    return float(round(consistency)), is_outlier, pattern


def _sophistication(tx: TransactionRecord, cfg: AnalyzerConfig) -> SophisticationLevel:
    info = lookup_protocol(tx.to_address)
    if info is not None:
        return info.sophistication
    if tx.protocol_name:
        name = tx.protocol_name.lower()
        for keyword, level in PROTOCOL_SOPHISTICATION:
            if keyword in name:
                return level

    gas_used = tx.gas_used_int
    if gas_used > cfg.expert_gas_used:
        return SophisticationLevel.EXPERT
    if gas_used > cfg.advanced_gas_used:
        return SophisticationLevel.ADVANCED
    if tx.is_defi or tx.is_staking:
        return SophisticationLevel.INTERMEDIATE
    return SophisticationLevel.BASIC


def _intent(tx: TransactionRecord, history: Sequence[TransactionRecord]) -> Intent:
    value = tx.amount
    within_hour = [h for h in history if abs(tx.timestamp - h.timestamp) < HOUR_SECONDS]
    if len(within_hour) > 2 and tx.is_defi:
        return Intent.ARBITRAGE

    if tx.is_defi and value > 0.1:
        recent_defi = [
            h for h in history if h.is_defi and abs(tx.timestamp - h.timestamp) < DAY_SECONDS
        ]
        if len(recent_defi) > 1:
            return Intent.TRADING

    protocol = (tx.protocol_name or "").lower()
    if tx.is_staking or any(p in protocol for p in INVESTMENT_PROTOCOLS):
        return Intent.INVESTMENT

    if tx.is_defi and value > 1 and sum(1 for h in history if h.is_defi) < 5:
        return Intent.SPECULATION
    return Intent.UTILITY


def analyze_transaction(
    tx: TransactionRecord,
    history: Sequence[TransactionRecord],
    market_context: MarketContext | None = None,
    config: AnalyzerConfig | None = None,
) -> TransactionAnalysis:
    """Analyse one transaction in the context of the address's prior history."""
    cfg = config or AnalyzerConfig()
    factors = _risk_factors(tx, history, cfg)
    efficiency, rating = gas_efficiency(tx, market_context, cfg)
    category = categorize_transaction(tx)
    consistency, is_outlier, timing = _temporal_position(tx, history, cfg)

    analysis = TransactionAnalysis(
        hash=tx.hash,
        timestamp=tx.timestamp,
        value=tx.value,
        gas_price=tx.gas_price,
        gas_used=tx.gas_used,
        risk_score=_overall_risk(factors),
        risk_factors=factors,
        gas_efficiency_score=efficiency,
        gas_optimization_rating=rating,
        category=category.primary,
        subcategory=category.subcategory,
        protocol_name=category.protocol_name or tx.protocol_name,
        timing_consistency=consistency,
        is_outlier=is_outlier,
        temporal_pattern=timing,
        sophistication_level=_sophistication(tx, cfg),
        intent_classification=_intent(tx, history),
    )
    logger.debug(
        "transaction_analyzed",
        tx_hash=tx.hash,
        risk_score=analysis.risk_score,
        category=analysis.category.value,
    )
    return analysis


def _average_interval(transactions: Sequence[TransactionRecord]) -> float:
    if len(transactions) < 2:
        return 0.0
    return stats.mean(stats.intervals(t.timestamp for t in transactions))


def _utc_hour(timestamp: int) -> int:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).hour


def analyze_temporal_patterns(
    transactions: Sequence[TransactionRecord],
    config: AnalyzerConfig | None = None,
) -> TemporalPatternAnalysis:
    """
    Describe the timing of a whole history.

    Pattern is GROWING / DECLINING when the latest intervals are much
    shorter / longer than the earliest, otherwise REGULAR, BURST or SPORADIC
    by interval CV. Fewer than 2 transactions reports DECLINING with no data.
    """
    cfg = config or AnalyzerConfig()
    if len(transactions) < 2:
        return TemporalPatternAnalysis(
            consistency_score=0.0,
            pattern_type=ActivityPattern.DECLINING,
            average_interval_hours=0.0,
        )

    ordered = sort_by_time(transactions)
    gaps = stats.intervals(t.timestamp for t in ordered)
    avg_gap = stats.mean(gaps)
    sigma = stats.std_dev(gaps)
    cv = stats.coefficient_of_variation(gaps)

    window = min(10, len(ordered) // 2)
    recent_avg = _average_interval(ordered[-window:])
    older_avg = _average_interval(ordered[:window])
    if recent_avg < older_avg * 0.7:
        pattern = ActivityPattern.GROWING
    elif recent_avg > older_avg * 1.5:
        pattern = ActivityPattern.DECLINING
    elif cv < cfg.regular_cv:
        pattern = ActivityPattern.REGULAR
    elif cv > cfg.burst_cv:
        pattern = ActivityPattern.BURST
    else:
        pattern = ActivityPattern.SPORADIC

    hour_counts = [0] * 24
    for t in ordered:
        hour_counts[_utc_hour(t.timestamp)] += 1
    peak = max(hour_counts)
    peak_hours = [hour for hour, count in enumerate(hour_counts) if count >= peak * 0.8]

    anomalous = [
        ordered[i]
        for i in range(1, len(ordered))
        if abs(gaps[i - 1] - avg_gap) > cfg.outlier_std_multiplier * sigma
    ]

    return TemporalPatternAnalysis(
        consistency_score=float(round(stats.clamp(100 - cv * 50))),
        pattern_type=pattern,
        average_interval_hours=float(round(avg_gap / HOUR_SECONDS)),
        peak_activity_hours=peak_hours,
        anomalous_transactions=anomalous,
    )


def _efficiency_level(score: float) -> GasRating:
    if score >= 80:
        return GasRating.EXCELLENT
    if score >= 60:
        return GasRating.GOOD
    if score >= 40:
        return GasRating.AVERAGE
    return GasRating.POOR


def generate_efficiency_recommendations(
    transactions: Sequence[TransactionRecord],
    config: AnalyzerConfig | None = None,
) -> EfficiencyMetrics:
    """Gas spending summary with cost-saving suggestions; empty history scores 0."""
    cfg = config or AnalyzerConfig()
    if not transactions:
        return EfficiencyMetrics(
            gas_efficiency_score=0.0,
            average_gas_price=0.0,
            gas_optimization_level=GasRating.POOR,
            timing_optimization=0.0,
            cost_savings_potential=0.0,
        )

    efficiency = stats.mean(gas_efficiency(tx, config=cfg)[0] for tx in transactions)
    timing = analyze_temporal_patterns(transactions, cfg).consistency_score
    expensive = sum(1 for tx in transactions if tx.gas_price_gwei > cfg.gas_good_gwei)
    savings = expensive / len(transactions) * 100

    recommendations: list[str] = []
    if efficiency < 60:
        recommendations.append(
            "Consider using gas price optimization tools to reduce transaction costs"
        )
    if timing < 50:
        recommendations.append("Optimize transaction timing to avoid network congestion periods")
    if savings > 30:
        recommendations.append(
            "Monitor gas prices and delay non-urgent transactions during high congestion"
        )

    return EfficiencyMetrics(
        gas_efficiency_score=float(round(efficiency)),
        average_gas_price=stats.mean(tx.gas_price_gwei for tx in transactions),
        gas_optimization_level=_efficiency_level(efficiency),
        timing_optimization=float(round(timing)),
        cost_savings_potential=float(round(savings)),
        recommendations=recommendations,
    )
