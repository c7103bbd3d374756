"""
Six-dimension risk assessment for one address.

Scores concentration, volatility, inactivity, new-account, anomaly and
liquidity risk, combines them into a confidence-weighted composite,
bands it, raises suspicious-activity flags and emits prioritised
mitigation recommendations.

The anomaly dimension is chosen by data availability: with a detection
result from detect_anomalies the DetectorAnomalyStrategy reads it; without
one the HeuristicAnomalyStrategy falls back to simple timing, gas and
volume checks over the raw history.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Sequence

from backend_txrisk.analysis_engine import stats
from backend_txrisk.analysis_engine.detector import AnomalyDetectionResult, detect_anomalies
from backend_txrisk.analysis_engine.models import (
    RiskLevel,
    TransactionRecord,
    UserProfile,
    sort_by_time,
)
from backend_txrisk.analytics.transaction_analyzer import (
    ActivityPattern,
    analyze_temporal_patterns,
)
from backend_txrisk.config.settings import AnalyzerConfig, EngineSettings, RiskConfig, get_settings
from backend_txrisk.core.exceptions import InvalidProfileError
from backend_txrisk.txrisk_logging import bind_address

DAY_SECONDS = 86400

CONCENTRATION = "concentration"
VOLATILITY = "volatility"
INACTIVITY = "inactivity"
NEW_ACCOUNT = "new_account"
ANOMALY = "anomaly"
LIQUIDITY = "liquidity"

# Base share of each dimension in the composite, before confidence scaling.
DIMENSION_WEIGHTS: Mapping[str, float] = MappingProxyType({
    CONCENTRATION: 0.25,
    VOLATILITY: 0.20,
    INACTIVITY: 0.20,
    NEW_ACCOUNT: 0.15,
    ANOMALY: 0.15,
    LIQUIDITY: 0.05,
})

NO_HISTORY = "No transaction history available for anomaly analysis"


class RecommendationPriority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


_PRIORITY_ORDER = {
    RecommendationPriority.HIGH: 0,
    RecommendationPriority.MEDIUM: 1,
    RecommendationPriority.LOW: 2,
}


class RecommendationCategory(str, Enum):
    DIVERSIFICATION = "DIVERSIFICATION"
    ACTIVITY = "ACTIVITY"
    SECURITY = "SECURITY"
    BEHAVIORAL = "BEHAVIORAL"


class Timeframe(str, Enum):
    IMMEDIATE = "IMMEDIATE"
    SHORT_TERM = "SHORT_TERM"
    LONG_TERM = "LONG_TERM"


class Trend(str, Enum):
    INCREASING = "INCREASING"
    STABLE = "STABLE"
    DECREASING = "DECREASING"
    DECLINING = "DECLINING"
    INACTIVE = "INACTIVE"


@dataclass
class RiskFactor:
    level: RiskLevel
    score: float
    explanation: str
    indicators: list[str] = field(default_factory=list)
    mitigation_suggestions: list[str] = field(default_factory=list)
    confidence: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level.value,
            "score": self.score,
            "explanation": self.explanation,
            "indicators": list(self.indicators),
            "mitigation_suggestions": list(self.mitigation_suggestions),
            "confidence": self.confidence,
        }


@dataclass
class RiskFactors:
    concentration: RiskFactor
    volatility: RiskFactor
    inactivity: RiskFactor
    new_account: RiskFactor
    anomaly: RiskFactor
    liquidity: RiskFactor

    def items(self) -> Iterator[tuple[str, RiskFactor]]:
        """(dimension, factor) pairs in fixed dimension order."""
        yield CONCENTRATION, self.concentration
        yield VOLATILITY, self.volatility
        yield INACTIVITY, self.inactivity
        yield NEW_ACCOUNT, self.new_account
        yield ANOMALY, self.anomaly
        yield LIQUIDITY, self.liquidity

    def to_dict(self) -> dict[str, Any]:
        return {f"{name}_risk": factor.to_dict() for name, factor in self.items()}


@dataclass
class SuspiciousActivityFlags:
    suspicious_activity: bool = False
    wash_trading: bool = False
    bot_behavior: bool = False
    coordinated_activity: bool = False
    unusual_patterns: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "suspicious_activity": self.suspicious_activity,
            "wash_trading": self.wash_trading,
            "bot_behavior": self.bot_behavior,
            "coordinated_activity": self.coordinated_activity,
            "unusual_patterns": self.unusual_patterns,
        }


@dataclass
class RiskMitigationRecommendation:
    priority: RecommendationPriority
    category: RecommendationCategory
    title: str
    description: str
    action_items: list[str]
    expected_impact: str
    timeframe: Timeframe

    def to_dict(self) -> dict[str, Any]:
        return {
            "priority": self.priority.value,
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "action_items": list(self.action_items),
            "expected_impact": self.expected_impact,
            "timeframe": self.timeframe.value,
        }


@dataclass
class RiskAssessment:
    """
    Full risk verdict for one address.

    risk_score and confidence are in [0, 100]; overall_risk is
    risk_level_for_score(risk_score).
    """

    address: str
    overall_risk: RiskLevel
    risk_score: float
    confidence: float
    risk_factors: RiskFactors
    flags: SuspiciousActivityFlags
    recommendations: list[RiskMitigationRecommendation]

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "overall_risk": self.overall_risk.value,
            "risk_score": self.risk_score,
            "confidence": self.confidence,
            "risk_factors": self.risk_factors.to_dict(),
            "flags": self.flags.to_dict(),
            "recommendations": [r.to_dict() for r in self.recommendations],
        }


def risk_level_for_score(score: float) -> RiskLevel:
    """Band a 0-100 score: >= 80 CRITICAL, >= 60 HIGH, >= 40 MEDIUM, else LOW."""
    if score >= 80:
        return RiskLevel.CRITICAL
    if score >= 60:
        return RiskLevel.HIGH
    if score >= 40:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _raise_to_medium(level: RiskLevel) -> RiskLevel:
    return RiskLevel.MEDIUM if level is RiskLevel.LOW else level


def _tx_per_month(profile: UserProfile) -> float:
    return profile.total_transactions / max(profile.account_age_days, 1) * 30


def _staking_ratio(profile: UserProfile) -> float:
    volume = profile.total_volume_eth
    return profile.staking_balance_eth / volume if volume > 0 else 0.0


# Concentration


def _max_share(counts: Counter[str], total: int) -> float:
    if not counts or total == 0:
        return 0.0
    return max(counts.values()) / total * 100


def _utc_month(timestamp: int) -> str:
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return f"{moment.year}-{moment.month}"


def _tx_type(tx: TransactionRecord) -> str:
    if tx.is_staking:
        return "STAKING"
    if tx.is_defi:
        return "DEFI"
    return "TRANSFER"


def _concentration_risk(
    profile: UserProfile,
    transactions: Sequence[TransactionRecord],
    cfg: RiskConfig,
) -> RiskFactor:
    protocols = profile.defi_protocols_used
    defi_count = sum(1 for tx in transactions if tx.is_defi)
    # Per-protocol usage is not tracked; DeFi activity is split evenly.
    protocol_share = 100 / len(protocols) if protocols and defi_count > 0 else 0.0
    n = len(transactions)
    type_share = _max_share(Counter(_tx_type(tx) for tx in transactions), n)
    month_share = _max_share(Counter(_utc_month(tx.timestamp) for tx in transactions), n)
    score = float(round((protocol_share + type_share + month_share) / 3))

    level = RiskLevel.LOW
    indicators: list[str] = []
    mitigations: list[str] = []
    concentrated = protocol_share >= cfg.protocol_concentration_high
    if protocol_share >= cfg.protocol_concentration_critical:
        level = RiskLevel.CRITICAL
        indicators.append(
            f"Extreme concentration: {protocol_share:.1f}% of activity in single protocol"
        )
        mitigations.append(
            "Immediately diversify across multiple protocols to reduce concentration risk"
        )
    elif concentrated:
        level = RiskLevel.HIGH
        indicators.append(f"High concentration: {protocol_share:.1f}% of activity in single protocol")
        mitigations.append("Diversify protocol usage to reduce concentration risk")

    if type_share >= cfg.type_concentration_high:
        level = _raise_to_medium(level)
        indicators.append(
            f"High transaction type concentration: {type_share:.1f}% in single type"
        )
        mitigations.append("Diversify transaction types to improve risk profile")

    if not protocols:
        level = RiskLevel.MEDIUM
        indicators.append("No DeFi protocol diversification detected")
        mitigations.append("Consider exploring DeFi protocols for diversification")
    elif len(protocols) == 1:
        level = _raise_to_medium(level)
        indicators.append("Limited protocol diversification (single DeFi protocol)")
        mitigations.append("Expand to additional DeFi protocols for better diversification")

    if concentrated:
        explanation = (
            f"High concentration risk detected with {protocol_share:.1f}% of activity "
            "concentrated in a single protocol. This creates significant exposure to "
            "protocol-specific risks and reduces diversification benefits."
        )
    elif not protocols:
        explanation = (
            "No DeFi protocol activity detected, which limits diversification opportunities "
            "and may indicate concentration in basic transfers only."
        )
    else:
        explanation = (
            "Concentration risk is within acceptable levels with reasonable diversification "
            "across protocols and transaction types."
        )

    confidence = 50.0
    if protocols:
        confidence += 20
    if len(protocols) > 3:
        confidence += 15
    if n > 20:
        confidence += 15

    return RiskFactor(level, score, explanation, indicators, mitigations, min(100.0, confidence))


# Volatility


def _protocol_switches(ordered: Sequence[TransactionRecord]) -> int:
    switches = 0
    for prev, cur in zip(ordered, ordered[1:]):
        if (prev.protocol_name or "unknown") != (cur.protocol_name or "unknown"):
            switches += 1
    return switches


def _volatility_risk(
    profile: UserProfile,
    transactions: Sequence[TransactionRecord],
) -> RiskFactor:
    n = len(transactions)
    volume_vol = frequency_vol = gas_vol = behavioral_vol = 0.0
    score = 0.0
    trend = Trend.STABLE
    if n >= 2:
        ordered = sort_by_time(transactions)
        volume_vol = min(100.0, stats.coefficient_of_variation([t.amount for t in ordered]) * 50)
        frequency_vol = min(
            100.0, stats.coefficient_of_variation(stats.intervals(t.timestamp for t in ordered)) * 50
        )
        gas_vol = min(
            100.0, stats.coefficient_of_variation([t.gas_price_gwei for t in ordered]) * 50
        )
        behavioral_vol = min(100.0, _protocol_switches(ordered) * 10.0)
        score = float(round((volume_vol + frequency_vol + gas_vol + behavioral_vol) / 4))

        window = min(10, n // 2)
        recent = stats.coefficient_of_variation([t.amount for t in ordered[-window:]])
        older = stats.coefficient_of_variation([t.amount for t in ordered[:window]])
        if recent > older * 1.2:
            trend = Trend.INCREASING
        elif recent < older * 0.8:
            trend = Trend.DECREASING

    level = risk_level_for_score(score)
    indicators: list[str] = []
    mitigations: list[str] = []
    if level is RiskLevel.CRITICAL:
        indicators.append("Extremely volatile transaction patterns detected")
        mitigations.append(
            "Establish more consistent transaction patterns to reduce volatility risk"
        )
    elif level is RiskLevel.HIGH:
        indicators.append("High volatility in transaction patterns")
        mitigations.append("Consider more regular transaction patterns to improve stability")
    elif level is RiskLevel.MEDIUM:
        indicators.append("Moderate volatility in transaction behavior")
        mitigations.append("Monitor transaction patterns for consistency improvements")

    if volume_vol > 70:
        indicators.append(f"High transaction volume volatility ({volume_vol:.1f}%)")
    if frequency_vol > 70:
        indicators.append(f"Irregular transaction frequency patterns ({frequency_vol:.1f}%)")
    if gas_vol > 70:
        indicators.append(f"Inconsistent gas price optimization ({gas_vol:.1f}%)")

    if trend is Trend.INCREASING:
        level = _raise_to_medium(level)
        indicators.append("Volatility trend is increasing over time")
        mitigations.append("Focus on establishing more consistent behavioral patterns")

    volatile = [
        label
        for label, value in (
            ("transaction volumes", volume_vol),
            ("transaction timing", frequency_vol),
            ("gas price patterns", gas_vol),
            ("protocol usage patterns", behavioral_vol),
        )
        if value > 60
    ]
    if volatile:
        explanation = (
            f"High volatility detected in {', '.join(volatile)}. This indicates unpredictable "
            "behavior patterns that may suggest higher risk or automated activity."
        )
    elif trend is Trend.INCREASING:
        explanation = (
            "Volatility is increasing over time, which may indicate changing behavior patterns "
            "or increased risk-taking activity."
        )
    else:
        explanation = (
            "Transaction patterns show acceptable volatility levels with consistent "
            "behavioral patterns."
        )

    confidence = 50.0
    if n > 10:
        confidence += 25
    if n > 50:
        confidence += 15
    if profile.account_age_days > 30:
        confidence += 10

    return RiskFactor(level, score, explanation, indicators, mitigations, min(100.0, confidence))


# Inactivity


def _inactivity_risk(profile: UserProfile, now_ts: int, cfg: RiskConfig) -> RiskFactor:
    days = (now_ts - profile.last_transaction_date) // DAY_SECONDS
    per_month = _tx_per_month(profile)

    if days >= cfg.inactivity_critical_days:
        trend = Trend.INACTIVE
    elif days >= cfg.inactivity_high_days or per_month < 1:
        trend = Trend.DECLINING
    elif per_month > 5:
        trend = Trend.INCREASING
    else:
        trend = Trend.STABLE

    level = RiskLevel.LOW
    indicators: list[str] = []
    mitigations: list[str] = []
    if days >= cfg.inactivity_critical_days:
        score = 90.0
        level = RiskLevel.CRITICAL
        indicators.append(f"No activity for {days} days (critical inactivity)")
        mitigations.append("Immediate reactivation recommended to maintain account health")
    elif days >= cfg.inactivity_high_days:
        score = 70.0
        level = RiskLevel.HIGH
        indicators.append(f"No activity for {days} days (high inactivity risk)")
        mitigations.append("Consider resuming regular transaction activity")
    elif days >= cfg.inactivity_warning_days:
        score = 40.0
        level = RiskLevel.MEDIUM
        indicators.append(f"Reduced activity: {days} days since last transaction")
        mitigations.append("Monitor activity levels to prevent further decline")
    else:
        score = float(min(30, max(0, days) * 2))

    if trend is Trend.DECLINING:
        level = _raise_to_medium(level)
        indicators.append("Declining activity trend detected")
        mitigations.append("Consider strategies to maintain or increase activity levels")
    elif trend is Trend.INACTIVE:
        level = RiskLevel.HIGH
        indicators.append("Account shows inactive status")
        mitigations.append("Reactivation strongly recommended")

    if days > cfg.inactivity_warning_days:
        mitigations.append("Consider making a small transaction to reactivate the account")
    if not profile.defi_protocols_used:
        mitigations.append("Explore DeFi protocols to increase activity and engagement")
    if profile.staking_balance_eth == 0:
        mitigations.append("Consider staking some ETH to maintain passive activity")

    if days >= cfg.inactivity_critical_days:
        explanation = (
            f"Critical inactivity risk: No transactions for {days} days. Extended inactivity "
            "may indicate account abandonment or security issues."
        )
    elif days >= cfg.inactivity_high_days:
        explanation = (
            f"High inactivity risk: {days} days without activity. This level of inactivity "
            "may negatively impact creditworthiness assessment."
        )
    elif days >= cfg.inactivity_warning_days:
        explanation = (
            f"Moderate inactivity detected: {days} days since last transaction. Consider "
            "resuming regular activity to maintain account health."
        )
    elif trend is Trend.DECLINING:
        explanation = (
            "Activity trend is declining, which may indicate reduced engagement or changing "
            "usage patterns."
        )
    else:
        explanation = "Account shows healthy activity levels with acceptable transaction frequency."

    return RiskFactor(level, score, explanation, indicators, mitigations, 90.0)


# New account


def _new_account_risk(profile: UserProfile, cfg: RiskConfig) -> RiskFactor:
    age = profile.account_age_days
    count = profile.total_transactions
    score = 0.0
    level = RiskLevel.LOW
    indicators: list[str] = []
    mitigations: list[str] = []

    if age <= cfg.new_account_days:
        score += max(0.0, 100 - age / cfg.new_account_days * 100) * 0.6
        if age <= cfg.very_new_account_days:
            level = RiskLevel.HIGH
            indicators.append(f"Very new account ({age} days old)")
            mitigations.append("Build transaction history over time to establish credibility")
        elif age <= 14:
            level = RiskLevel.MEDIUM
            indicators.append(f"New account ({age} days old)")
            mitigations.append("Continue building consistent transaction patterns")
        else:
            level = RiskLevel.MEDIUM
            indicators.append(f"Relatively new account ({age} days old)")
            mitigations.append("Maintain regular activity to establish track record")

    if count <= cfg.limited_history_transactions:
        score += max(0.0, 100 - count / cfg.limited_history_transactions * 100) * 0.4
        if count <= cfg.very_limited_history_transactions:
            if level is not RiskLevel.HIGH:
                level = RiskLevel.MEDIUM
            indicators.append(f"Very limited transaction history ({count} transactions)")
            mitigations.append("Increase transaction frequency to build credibility")
        else:
            indicators.append(f"Limited transaction history ({count} transactions)")
            mitigations.append("Continue building transaction history")

    volume = profile.total_volume_eth
    if volume < 0.1 and age <= cfg.new_account_days:
        score += 20
        indicators.append(f"Low transaction volume for new account ({volume:.4f} ETH)")
        mitigations.append("Gradually increase transaction volume to demonstrate activity")

    if age <= cfg.very_new_account_days:
        explanation = (
            f"Very new account ({age} days old) with limited transaction history ({count} "
            "transactions). New accounts inherently carry higher risk due to lack of "
            "established behavioral patterns."
        )
    elif age <= cfg.new_account_days:
        explanation = (
            f"New account ({age} days old) still building transaction history. Risk will "
            "decrease as the account establishes consistent behavioral patterns over time."
        )
    elif count <= cfg.limited_history_transactions:
        explanation = (
            f"Limited transaction history ({count} transactions) despite account age. More "
            "activity is needed to establish reliable behavioral patterns."
        )
    else:
        explanation = (
            "Account has sufficient age and transaction history to establish reliable risk "
            "assessment."
        )

    return RiskFactor(
        level, float(round(min(100.0, score))), explanation, indicators, mitigations, 95.0
    )


# Anomaly


class AnomalyRiskStrategy(ABC):
    """Scores the anomaly dimension and raises suspicious-activity flags."""

    @abstractmethod
    def assess(
        self,
        profile: UserProfile,
        transactions: Sequence[TransactionRecord],
        anomaly_result: AnomalyDetectionResult | None,
    ) -> RiskFactor:
        ...

    @abstractmethod
    def flags(
        self,
        profile: UserProfile,
        transactions: Sequence[TransactionRecord],
        anomaly_result: AnomalyDetectionResult | None,
    ) -> SuspiciousActivityFlags:
        ...


class DetectorAnomalyStrategy(AnomalyRiskStrategy):
    """Reads a detect_anomalies result."""

    def assess(
        self,
        profile: UserProfile,
        transactions: Sequence[TransactionRecord],
        anomaly_result: AnomalyDetectionResult | None,
    ) -> RiskFactor:
        result = anomaly_result
        score = result.overall_anomaly_score
        indicators: list[str] = []
        mitigations: list[str] = []
        flags = result.flags

        if flags.has_statistical_anomalies:
            indicators.append(
                f"{len(result.statistical_anomalies)} statistical anomalies detected"
            )
        if flags.has_wash_trading:
            indicators.append("Wash trading patterns identified")
            mitigations.append("Review transaction legitimacy and avoid circular trading patterns")
        if flags.has_bot_behavior:
            probability = result.bot_behavior_detection.bot_probability
            indicators.append(f"Bot behavior detected ({probability:.1f}% probability)")
            mitigations.append("Ensure trading behavior appears natural and human-like")
        if flags.has_coordinated_activity:
            indicators.append("Coordinated activity patterns detected")
            mitigations.append("Avoid synchronized trading patterns that suggest coordination")

        indicators.extend(
            a.description
            for a in result.statistical_anomalies
            if a.severity in (RiskLevel.HIGH, RiskLevel.CRITICAL)
        )
        mitigations.extend(result.recommendations)

        return RiskFactor(
            level=risk_level_for_score(score),
            score=float(round(score)),
            explanation=result.risk_explanation,
            indicators=indicators,
            mitigation_suggestions=mitigations,
            confidence=result.confidence,
        )

    def flags(
        self,
        profile: UserProfile,
        transactions: Sequence[TransactionRecord],
        anomaly_result: AnomalyDetectionResult | None,
    ) -> SuspiciousActivityFlags:
        f = anomaly_result.flags
        return SuspiciousActivityFlags(
            suspicious_activity=(
                f.has_statistical_anomalies
                or f.has_wash_trading
                or f.has_bot_behavior
                or f.has_coordinated_activity
            ),
            wash_trading=f.has_wash_trading,
            bot_behavior=f.has_bot_behavior,
            coordinated_activity=f.has_coordinated_activity,
            unusual_patterns=f.has_statistical_anomalies,
        )


class HeuristicAnomalyStrategy(AnomalyRiskStrategy):
    """Simple timing, gas and volume checks used when no detection result exists."""

    def __init__(self, analyzer_config: AnalyzerConfig | None = None) -> None:
        self.analyzer_config = analyzer_config or AnalyzerConfig()

    def assess(
        self,
        profile: UserProfile,
        transactions: Sequence[TransactionRecord],
        anomaly_result: AnomalyDetectionResult | None = None,
    ) -> RiskFactor:
        n = len(transactions)
        if n == 0:
            return RiskFactor(
                level=RiskLevel.LOW,
                score=0.0,
                explanation=NO_HISTORY,
                indicators=["Insufficient data for anomaly detection"],
                mitigation_suggestions=[
                    "Build transaction history for comprehensive risk assessment"
                ],
                confidence=0.0,
            )

        temporal = analyze_temporal_patterns(transactions, self.analyzer_config)
        score = 0.0
        level = RiskLevel.LOW
        indicators: list[str] = []
        mitigations: list[str] = []

        anomalous = len(temporal.anomalous_transactions)
        if anomalous:
            ratio = anomalous / n
            score += ratio * 60
            if ratio > 0.3:
                level = RiskLevel.HIGH
                indicators.append(f"High number of anomalous transactions ({ratio * 100:.1f}%)")
                mitigations.append("Review transaction patterns for consistency")
            elif ratio > 0.1:
                level = RiskLevel.MEDIUM
                indicators.append(f"Some anomalous transactions detected ({ratio * 100:.1f}%)")
                mitigations.append("Monitor transaction patterns for regularity")

        if stats.coefficient_of_variation([tx.gas_price_gwei for tx in transactions]) > 2:
            score += 25
            level = _raise_to_medium(level)
            indicators.append("Highly variable gas price patterns detected")
            mitigations.append("Consider more consistent gas price optimization strategies")

        if stats.coefficient_of_variation([tx.amount for tx in transactions]) > 3:
            score += 20
            level = _raise_to_medium(level)
            indicators.append("Highly variable transaction volume patterns")
            mitigations.append("Consider more consistent transaction sizing")

        if temporal.pattern_type is ActivityPattern.BURST:
            score += 30
            if level is not RiskLevel.HIGH:
                level = RiskLevel.MEDIUM
            indicators.append("Burst transaction patterns detected (potential automated behavior)")
            mitigations.append("Ensure transaction patterns reflect natural user behavior")

        if anomalous:
            plural = "s" if anomalous > 1 else ""
            explanation = (
                f"{anomalous} anomalous transaction{plural} detected that deviate significantly "
                "from normal patterns. This may indicate unusual behavior or potential "
                "automated activity."
            )
        elif temporal.pattern_type is ActivityPattern.BURST:
            explanation = (
                "Burst transaction patterns detected, which may indicate automated or "
                "coordinated activity rather than natural user behavior."
            )
        else:
            explanation = "Transaction patterns appear normal with no significant anomalies detected."

        confidence = 50.0
        if n > 20:
            confidence += 30
        if n > 50:
            confidence += 15
        if n < 5:
            confidence = 20.0

        return RiskFactor(
            level=level,
            score=float(round(min(100.0, score))),
            explanation=explanation,
            indicators=indicators,
            mitigation_suggestions=mitigations,
            confidence=min(100.0, confidence),
        )

    def flags(
        self,
        profile: UserProfile,
        transactions: Sequence[TransactionRecord],
        anomaly_result: AnomalyDetectionResult | None = None,
    ) -> SuspiciousActivityFlags:
        if not transactions:
            return SuspiciousActivityFlags()
        wash = self._wash_trading(transactions)
        bot = self._bot_behavior(transactions)
        coordinated = self._coordinated(transactions)
        unusual = self._unusual_patterns(profile, transactions)
        return SuspiciousActivityFlags(
            suspicious_activity=wash or bot or coordinated or unusual,
            wash_trading=wash,
            bot_behavior=bot,
            coordinated_activity=coordinated,
            unusual_patterns=unusual,
        )

    @staticmethod
    def _wash_trading(transactions: Sequence[TransactionRecord]) -> bool:
        ordered = sort_by_time(transactions)
        for a, b in zip(ordered, ordered[1:]):
            if b.timestamp - a.timestamp >= 3600 or a.amount <= 0.01:
                continue
            if abs(a.amount - b.amount) / max(a.amount, b.amount) < 0.1:
                return True
        return False

    @staticmethod
    def _bot_behavior(transactions: Sequence[TransactionRecord]) -> bool:
        if len(transactions) < 5:
            return False
        gaps = stats.intervals(tx.timestamp for tx in transactions)
        return len(gaps) > 10 and stats.coefficient_of_variation(gaps) < 0.1

    @staticmethod
    def _coordinated(transactions: Sequence[TransactionRecord]) -> bool:
        counts = Counter(tx.gas_price for tx in transactions)
        ratio = max(counts.values()) / len(transactions)
        return ratio > 0.7 and len(transactions) > 5

    @staticmethod
    def _unusual_patterns(
        profile: UserProfile,
        transactions: Sequence[TransactionRecord],
    ) -> bool:
        if profile.total_transactions < 5 and profile.total_volume_eth > 10:
            return True
        if len(transactions) > 10:
            amounts = [tx.amount for tx in transactions]
            return max(amounts) > stats.mean(amounts) * 10
        return False


def select_anomaly_strategy(
    anomaly_result: AnomalyDetectionResult | None,
    settings: EngineSettings,
) -> AnomalyRiskStrategy:
    if anomaly_result is not None:
        return DetectorAnomalyStrategy()
    return HeuristicAnomalyStrategy(settings.analyzer)


# Liquidity


def _liquidity_risk(
    profile: UserProfile,
    transactions: Sequence[TransactionRecord],
    cfg: RiskConfig,
) -> RiskFactor:
    score = 0.0
    level = RiskLevel.LOW
    indicators: list[str] = []
    mitigations: list[str] = []

    ratio = _staking_ratio(profile)
    if ratio > cfg.very_high_staking_ratio:
        score += 40
        level = RiskLevel.HIGH
        indicators.append(f"Very high staking ratio ({ratio * 100:.1f}%) may limit liquidity")
        mitigations.append("Consider maintaining some liquid assets for flexibility")
    elif ratio > cfg.high_staking_ratio:
        score += 25
        level = RiskLevel.MEDIUM
        indicators.append(f"High staking ratio ({ratio * 100:.1f}%) may affect liquidity")
        mitigations.append("Monitor liquidity needs and staking commitments")

    per_month = _tx_per_month(profile)
    if per_month < 1 and profile.account_age_days > 30:
        score += 20
        level = _raise_to_medium(level)
        indicators.append("Low transaction frequency may indicate liquidity constraints")
        mitigations.append("Consider increasing transaction activity if liquidity allows")

    protocols = profile.defi_protocols_used
    if not protocols:
        score += 15
        indicators.append("No DeFi protocol usage may limit liquidity options")
        mitigations.append("Explore DeFi protocols for improved liquidity management")
    elif len(protocols) == 1:
        score += 10
        indicators.append("Single DeFi protocol usage may limit liquidity flexibility")
        mitigations.append("Diversify across multiple DeFi protocols for better liquidity")

    if ratio > cfg.very_high_staking_ratio:
        explanation = (
            f"Very high staking ratio ({ratio * 100:.1f}%) may significantly limit liquidity "
            "and flexibility for immediate transactions or market opportunities."
        )
    elif ratio > cfg.high_staking_ratio:
        explanation = (
            f"High staking ratio ({ratio * 100:.1f}%) may affect liquidity. Consider "
            "maintaining some liquid assets for flexibility."
        )
    elif per_month < 1:
        explanation = (
            "Low transaction frequency may indicate liquidity constraints or limited active "
            "asset management."
        )
    else:
        explanation = (
            "Liquidity position appears adequate with reasonable balance between staked and "
            "liquid assets."
        )

    confidence = 50.0
    if profile.staking_balance_eth > 0:
        confidence += 25
    if protocols:
        confidence += 15
    if profile.total_transactions > 20:
        confidence += 10

    return RiskFactor(
        level, float(round(min(100.0, score))), explanation, indicators, mitigations,
        min(100.0, confidence),
    )


# Aggregation


def _composite_score(factors: RiskFactors) -> float:
    weighted = 0.0
    total_weight = 0.0
    for name, factor in factors.items():
        weight = DIMENSION_WEIGHTS[name] * factor.confidence / 100
        weighted += factor.score * weight
        total_weight += weight
    if total_weight == 0:
        return 0.0
    return float(round(weighted / total_weight))


def _is_elevated(factor: RiskFactor) -> bool:
    return factor.level in (RiskLevel.HIGH, RiskLevel.CRITICAL)


def _recommendations(factors: RiskFactors) -> list[RiskMitigationRecommendation]:
    recs: list[RiskMitigationRecommendation] = []
    if _is_elevated(factors.concentration):
        recs.append(RiskMitigationRecommendation(
            priority=(
                RecommendationPriority.HIGH
                if factors.concentration.level is RiskLevel.CRITICAL
                else RecommendationPriority.MEDIUM
            ),
            category=RecommendationCategory.DIVERSIFICATION,
            title="Reduce Protocol Concentration Risk",
            description=(
                "Your activity is highly concentrated in a few protocols, which increases "
                "risk exposure."
            ),
            action_items=[
                "Explore additional DeFi protocols to diversify your activity",
                "Gradually redistribute activity across multiple protocols",
                "Research new protocols with good security track records",
            ],
            expected_impact=(
                "Significantly reduce concentration risk and improve overall risk profile"
            ),
            timeframe=Timeframe.SHORT_TERM,
        ))
    if _is_elevated(factors.volatility):
        recs.append(RiskMitigationRecommendation(
            priority=RecommendationPriority.MEDIUM,
            category=RecommendationCategory.BEHAVIORAL,
            title="Stabilize Transaction Patterns",
            description=(
                "Your transaction patterns show high volatility, which may indicate "
                "unpredictable behavior."
            ),
            action_items=[
                "Establish more regular transaction timing patterns",
                "Use consistent transaction sizes when possible",
                "Implement gas price optimization strategies",
            ],
            expected_impact="Improve behavioral consistency and reduce volatility risk",
            timeframe=Timeframe.LONG_TERM,
        ))
    if _is_elevated(factors.inactivity):
        recs.append(RiskMitigationRecommendation(
            priority=RecommendationPriority.HIGH,
            category=RecommendationCategory.ACTIVITY,
            title="Increase Account Activity",
            description=(
                "Your account shows signs of declining activity, which increases inactivity risk."
            ),
            action_items=[
                "Make regular transactions to maintain account activity",
                "Consider staking ETH for passive activity",
                "Explore DeFi protocols for ongoing engagement",
            ],
            expected_impact="Reduce inactivity risk and improve credit score",
            timeframe=Timeframe.IMMEDIATE,
        ))
    if factors.new_account.level in (RiskLevel.HIGH, RiskLevel.MEDIUM):
        recs.append(RiskMitigationRecommendation(
            priority=RecommendationPriority.MEDIUM,
            category=RecommendationCategory.ACTIVITY,
            title="Build Transaction History",
            description=(
                "As a new account, building consistent transaction history will improve your "
                "risk profile."
            ),
            action_items=[
                "Maintain regular transaction activity",
                "Gradually increase transaction volume over time",
                "Engage with reputable DeFi protocols",
            ],
            expected_impact="Establish credibility and reduce new account risk over time",
            timeframe=Timeframe.LONG_TERM,
        ))
    if _is_elevated(factors.anomaly):
        recs.append(RiskMitigationRecommendation(
            priority=RecommendationPriority.HIGH,
            category=RecommendationCategory.BEHAVIORAL,
            title="Address Unusual Patterns",
            description=(
                "Unusual transaction patterns have been detected that may indicate risky behavior."
            ),
            action_items=[
                "Review recent transaction patterns for consistency",
                "Avoid burst transaction patterns that may appear automated",
                "Maintain natural, human-like transaction timing",
            ],
            expected_impact="Reduce anomaly flags and improve behavioral assessment",
            timeframe=Timeframe.IMMEDIATE,
        ))
    if _is_elevated(factors.liquidity):
        recs.append(RiskMitigationRecommendation(
            priority=RecommendationPriority.MEDIUM,
            category=RecommendationCategory.DIVERSIFICATION,
            title="Improve Liquidity Management",
            description="Your asset allocation may limit liquidity and flexibility.",
            action_items=[
                "Maintain some liquid assets for flexibility",
                "Consider unstaking some assets if over-concentrated in staking",
                "Diversify across liquid DeFi protocols",
            ],
            expected_impact="Improve liquidity position and reduce liquidity risk",
            timeframe=Timeframe.SHORT_TERM,
        ))
    return sorted(recs, key=lambda r: _PRIORITY_ORDER[r.priority])


def _overall_confidence(
    profile: UserProfile,
    transactions: Sequence[TransactionRecord],
    now_ts: int,
) -> float:
    maturity = min(100.0, profile.account_age_days / 365 * 100)
    depth = min(100.0, len(transactions) / 50 * 100)
    days_since = (now_ts - profile.last_transaction_date) / DAY_SECONDS
    recency = max(0.0, 100 - days_since * 2)
    completeness = 80.0
    if profile.staking_balance_eth > 0:
        completeness += 10
    if profile.defi_protocols_used:
        completeness += 10
    total = maturity * 0.3 + depth * 0.4 + recency * 0.2 + completeness * 0.1
    return float(round(stats.clamp(total)))


def assess_risk(
    address: str,
    profile: UserProfile,
    transactions: Sequence[TransactionRecord] | None = None,
    *,
    settings: EngineSettings | None = None,
    now_ts: int | None = None,
    anomaly_result: AnomalyDetectionResult | None = None,
) -> RiskAssessment:
    """
    Assess one address across all six risk dimensions.

    Args:
        address: Address being assessed.
        profile: Aggregated metrics for the address.
        transactions: History in any order; None is treated as empty.
        settings: Thresholds and runtime knobs; get_settings() if None.
        now_ts: Reference time for inactivity and recency; current time if None.
        anomaly_result: Precomputed detect_anomalies result. When omitted and
            the history is non-empty, anomaly detection runs here.

    Raises:
        InvalidProfileError: profile is not a UserProfile.
    """
    if not isinstance(profile, UserProfile):
        raise InvalidProfileError(f"expected UserProfile, got {type(profile).__name__}")
    cfg = settings or get_settings()
    now = int(time.time()) if now_ts is None else int(now_ts)
    history = list(transactions or ())

    if anomaly_result is None and history:
        anomaly_result = detect_anomalies(address, profile, history, settings=cfg, now_ts=now)

    strategy = select_anomaly_strategy(anomaly_result, cfg)
    factors = RiskFactors(
        concentration=_concentration_risk(profile, history, cfg.risk),
        volatility=_volatility_risk(profile, history),
        inactivity=_inactivity_risk(profile, now, cfg.risk),
        new_account=_new_account_risk(profile, cfg.risk),
        anomaly=strategy.assess(profile, history, anomaly_result),
        liquidity=_liquidity_risk(profile, history, cfg.risk),
    )
    score = _composite_score(factors)
    level = risk_level_for_score(score)

    assessment = RiskAssessment(
        address=address,
        overall_risk=level,
        risk_score=score,
        confidence=_overall_confidence(profile, history, now),
        risk_factors=factors,
        flags=strategy.flags(profile, history, anomaly_result),
        recommendations=_recommendations(factors),
    )
    bind_address(address, __name__).debug(
        "risk_assessment_complete",
        risk_score=score,
        overall_risk=level.value,
        strategy=type(strategy).__name__,
    )
    return assessment
