"""
Anomaly detection orchestration for one address.

Runs the four independent detectors (statistical, wash trading, bot
behavior, coordination) over the same immutable history, joins them at a
single barrier, and combines them into an overall anomaly score, flags,
a risk explanation and recommendations.

Partial-failure policy: a detector that raises is logged, replaced by its
own empty result (explanation names the failure), listed in
failed_detectors, and the overall confidence is scaled by the share of
detectors that completed. The assessment is never aborted and never
silently reports full confidence on partial evidence.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Sequence

from backend_txrisk.analysis_engine import stats
from backend_txrisk.analysis_engine.anomaly import StatisticalAnomaly, detect_statistical_anomalies
from backend_txrisk.analysis_engine.bot_behavior import BotBehaviorResult, detect_bot_behavior
from backend_txrisk.analysis_engine.coordination import (
    CoordinatedActivityResult,
    detect_coordinated_activity,
)
from backend_txrisk.analysis_engine.models import TransactionRecord, UserProfile
from backend_txrisk.analysis_engine.wash_trading import WashTradingResult, detect_wash_trading
from backend_txrisk.config.settings import EngineSettings, get_settings
from backend_txrisk.core.exceptions import DetectorError
from backend_txrisk.txrisk_logging import bind_address, get_logger

logger = get_logger(__name__)

MIN_TRANSACTIONS = 3
INSUFFICIENT_HISTORY = "Insufficient transaction history for anomaly detection"
BUILD_HISTORY = "Build transaction history for comprehensive anomaly detection"

# Overall score above this requires manual investigation (exclusive).
INVESTIGATION_THRESHOLD = 70.0

# Share of the overall score contributed by each detector.
STATISTICAL_WEIGHT = 0.25
WASH_TRADING_WEIGHT = 0.30
BOT_BEHAVIOR_WEIGHT = 0.25
COORDINATION_WEIGHT = 0.20

STATISTICAL = "statistical"
WASH_TRADING = "wash_trading"
BOT_BEHAVIOR = "bot_behavior"
COORDINATION = "coordination"
DETECTOR_NAMES = (STATISTICAL, WASH_TRADING, BOT_BEHAVIOR, COORDINATION)


@dataclass
class AnomalyFlags:
    has_statistical_anomalies: bool = False
    has_wash_trading: bool = False
    has_bot_behavior: bool = False
    has_coordinated_activity: bool = False
    requires_investigation: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_statistical_anomalies": self.has_statistical_anomalies,
            "has_wash_trading": self.has_wash_trading,
            "has_bot_behavior": self.has_bot_behavior,
            "has_coordinated_activity": self.has_coordinated_activity,
            "requires_investigation": self.requires_investigation,
        }


@dataclass
class AnomalyDetectionResult:
    """
    Combined anomaly verdict for one address at one point in time.

    overall_anomaly_score and confidence are in [0, 100];
    flags.requires_investigation is True exactly when the score exceeds 70.
    """

    address: str
    timestamp: int
    """Unix seconds when the analysis ran; the only wall-clock dependent field."""
    overall_anomaly_score: float
    confidence: float
    statistical_anomalies: list[StatisticalAnomaly]
    wash_trading_detection: WashTradingResult
    bot_behavior_detection: BotBehaviorResult
    coordinated_activity_detection: CoordinatedActivityResult
    flags: AnomalyFlags
    risk_explanation: str
    recommendations: list[str]
    failed_detectors: list[str] = field(default_factory=list)
    """Detectors that raised; their results are empty placeholders."""

    @property
    def degraded(self) -> bool:
        return bool(self.failed_detectors)

    @classmethod
    def empty(cls, address: str, reason: str, timestamp: int) -> AnomalyDetectionResult:
        """Sentinel for histories too short to analyse: every score 0, reason everywhere."""
        return cls(
            address=address,
            timestamp=timestamp,
            overall_anomaly_score=0.0,
            confidence=0.0,
            statistical_anomalies=[],
            wash_trading_detection=WashTradingResult.empty(reason),
            bot_behavior_detection=BotBehaviorResult.empty(reason),
            coordinated_activity_detection=CoordinatedActivityResult.empty(reason),
            flags=AnomalyFlags(),
            risk_explanation=reason,
            recommendations=[BUILD_HISTORY],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "timestamp": self.timestamp,
            "overall_anomaly_score": self.overall_anomaly_score,
            "confidence": self.confidence,
            "statistical_anomalies": [a.to_dict() for a in self.statistical_anomalies],
            "wash_trading_detection": self.wash_trading_detection.to_dict(),
            "bot_behavior_detection": self.bot_behavior_detection.to_dict(),
            "coordinated_activity_detection": self.coordinated_activity_detection.to_dict(),
            "flags": self.flags.to_dict(),
            "risk_explanation": self.risk_explanation,
            "recommendations": list(self.recommendations),
            "failed_detectors": list(self.failed_detectors),
            "degraded": self.degraded,
        }


def _guarded(name: str, run: Callable[[], Any]) -> Any:
    """Run one detector, re-raising any failure as DetectorError tagged with its name."""
    try:
        return run()
    except Exception as e:
        raise DetectorError(name, str(e)) from e


def _placeholder(name: str, error: DetectorError) -> Any:
    reason = f"{name} detector failed: {error}"
    if name == STATISTICAL:
        return []
    if name == WASH_TRADING:
        return WashTradingResult.empty(reason)
    if name == BOT_BEHAVIOR:
        return BotBehaviorResult.empty(reason)
    return CoordinatedActivityResult.empty(reason)


def _run_detectors(
    transactions: Sequence[TransactionRecord],
    settings: EngineSettings,
    parallel: bool,
) -> tuple[dict[str, Any], list[str]]:
    """
    Evaluate every detector and join at one barrier.

    Returns results keyed by detector name (independent of completion order)
    and the sorted names of detectors that failed.
    """
    tasks: dict[str, Callable[[], Any]] = {
        STATISTICAL: partial(detect_statistical_anomalies, transactions, settings.statistical),
        WASH_TRADING: partial(detect_wash_trading, transactions, settings.wash_trading),
        BOT_BEHAVIOR: partial(detect_bot_behavior, transactions, settings.bot_behavior),
        COORDINATION: partial(detect_coordinated_activity, transactions, settings.coordination),
    }
    results: dict[str, Any] = {}
    failed: list[str] = []

    def _collect(name: str, outcome: Callable[[], Any]) -> None:
        try:
            results[name] = outcome()
        except DetectorError as e:
            logger.warning("anomaly_detector_failed", detector=e.detector, error=str(e))
            results[name] = _placeholder(name, e)
            failed.append(name)

    if parallel:
        with ThreadPoolExecutor(max_workers=settings.detector_workers) as executor:
            futures = {
                executor.submit(_guarded, name, run): name for name, run in tasks.items()
            }
            for fut in as_completed(futures):
                _collect(futures[fut], fut.result)
    else:
        for name, run in tasks.items():
            _collect(name, partial(_guarded, name, run))

    return results, sorted(failed, key=DETECTOR_NAMES.index)


def _overall_score(
    statistical: Sequence[StatisticalAnomaly],
    wash: WashTradingResult,
    bot: BotBehaviorResult,
    coordination: CoordinatedActivityResult,
) -> float:
    score = 0.0
    if statistical:
        score += stats.mean(a.score for a in statistical) * STATISTICAL_WEIGHT
    score += wash.risk_score * WASH_TRADING_WEIGHT
    score += bot.risk_score * BOT_BEHAVIOR_WEIGHT
    score += coordination.risk_score * COORDINATION_WEIGHT
    return min(100.0, score)


def _confidence(
    transaction_count: int,
    flags: AnomalyFlags,
    wash: WashTradingResult,
    bot: BotBehaviorResult,
    coordination: CoordinatedActivityResult,
    failed: Sequence[str],
) -> float:
    detections = sum(
        (
            flags.has_statistical_anomalies,
            flags.has_wash_trading,
            flags.has_bot_behavior,
            flags.has_coordinated_activity,
        )
    )
    confidence = min(30.0, float(transaction_count)) + detections * 15
    confidence += (wash.confidence + bot.confidence + coordination.confidence) * 0.1
    confidence = min(100.0, confidence)
    completed = len(DETECTOR_NAMES) - len(failed)
    return confidence * completed / len(DETECTOR_NAMES)


def _risk_explanation(
    statistical: Sequence[StatisticalAnomaly],
    flags: AnomalyFlags,
    score: float,
    failed: Sequence[str],
) -> str:
    parts = [f"Anomaly detection analysis completed with overall risk score of {score:.1f}/100."]
    issues: list[str] = []
    if statistical:
        issues.append(f"{len(statistical)} statistical anomalies")
    if flags.has_wash_trading:
        issues.append("wash trading patterns")
    if flags.has_bot_behavior:
        issues.append("automated behavior patterns")
    if flags.has_coordinated_activity:
        issues.append("coordination patterns")
    if issues:
        parts.append(f"Detected: {', '.join(issues)}.")
    else:
        parts.append("No significant anomalies detected.")

    if score > 80:
        parts.append("High risk profile requires immediate investigation.")
    elif score > 60:
        parts.append("Moderate risk profile warrants monitoring.")
    elif score > 30:
        parts.append("Low to moderate risk profile with some concerns.")
    else:
        parts.append("Low risk profile with normal transaction patterns.")

    if failed:
        parts.append(
            f"Confidence reduced: {len(failed)} of {len(DETECTOR_NAMES)} detectors failed "
            f"({', '.join(failed)})."
        )
    return " ".join(parts)


def _recommendations(flags: AnomalyFlags, score: float) -> list[str]:
    recs: list[str] = []
    if flags.requires_investigation:
        recs.append("Immediate manual review recommended due to high anomaly score")
    if flags.has_wash_trading:
        recs.append("Investigate potential wash trading patterns and verify transaction legitimacy")
    if flags.has_bot_behavior:
        recs.append(
            "Review for automated trading behavior and ensure compliance with platform policies"
        )
    if flags.has_coordinated_activity:
        recs.append("Analyze for potential multi-account coordination or external manipulation")
    if flags.has_statistical_anomalies:
        recs.append("Review statistical outliers for unusual transaction patterns")
    if score > 70:
        recs.append("Consider temporary restrictions pending investigation")
        recs.append("Implement enhanced monitoring for future transactions")
    elif score > 40:
        recs.append("Increase monitoring frequency for this account")
    if not recs:
        recs.append("Continue standard monitoring procedures")
    return recs


def detect_anomalies(
    address: str,
    profile: UserProfile | None,
    transactions: Sequence[TransactionRecord],
    *,
    settings: EngineSettings | None = None,
    parallel: bool | None = None,
    now_ts: int | None = None,
) -> AnomalyDetectionResult:
    """
    Run every anomaly detector over one address's history and combine them.

    Args:
        address: Address being analysed (echoed in the result and logs).
        profile: Aggregated metrics; accepted for interface symmetry with
            assess_risk, detectors read only the transactions.
        transactions: History in any order; never mutated.
        settings: Thresholds and runtime knobs; get_settings() if None.
        parallel: Override settings.parallel_detectors.
        now_ts: Timestamp to stamp on the result; current time if None.

    Returns:
        AnomalyDetectionResult. Fewer than 3 transactions returns the empty
        sentinel with all scores 0.
    """
    cfg = settings or get_settings()
    timestamp = int(time.time()) if now_ts is None else int(now_ts)
    log = bind_address(address, __name__)

    if len(transactions) < MIN_TRANSACTIONS:
        log.debug("anomaly_detection_skipped", transactions=len(transactions))
        return AnomalyDetectionResult.empty(address, INSUFFICIENT_HISTORY, timestamp)

    run_parallel = cfg.parallel_detectors if parallel is None else parallel
    results, failed = _run_detectors(transactions, cfg, run_parallel)
    statistical: list[StatisticalAnomaly] = results[STATISTICAL]
    wash: WashTradingResult = results[WASH_TRADING]
    bot: BotBehaviorResult = results[BOT_BEHAVIOR]
    coordination: CoordinatedActivityResult = results[COORDINATION]

    score = _overall_score(statistical, wash, bot, coordination)
    flags = AnomalyFlags(
        has_statistical_anomalies=len(statistical) > 0,
        has_wash_trading=wash.detected,
        has_bot_behavior=bot.detected,
        has_coordinated_activity=coordination.detected,
        requires_investigation=score > INVESTIGATION_THRESHOLD,
    )
    confidence = _confidence(len(transactions), flags, wash, bot, coordination, failed)

    log.debug(
        "anomaly_detection_complete",
        overall_anomaly_score=round(score, 2),
        confidence=round(confidence, 2),
        flags=flags.to_dict(),
        failed_detectors=failed,
    )
    return AnomalyDetectionResult(
        address=address,
        timestamp=timestamp,
        overall_anomaly_score=score,
        confidence=confidence,
        statistical_anomalies=statistical,
        wash_trading_detection=wash,
        bot_behavior_detection=bot,
        coordinated_activity_detection=coordination,
        flags=flags,
        risk_explanation=_risk_explanation(statistical, flags, score, failed),
        recommendations=_recommendations(flags, score),
        failed_detectors=failed,
    )
