"""
Analysis engine package: anomaly detection over one address's history.

Four independent detectors (statistical outliers, wash trading, bot
behavior, coordinated activity) share a numpy statistics kernel and are
combined by detect_anomalies into one explainable verdict.
"""

from backend_txrisk.analysis_engine.models import (
    RiskLevel,
    TransactionRecord,
    UserProfile,
    sort_by_time,
)
from backend_txrisk.analysis_engine.anomaly import (
    AnomalyType,
    StatisticalAnomaly,
    StatisticalMethod,
    detect_statistical_anomalies,
)
from backend_txrisk.analysis_engine.wash_trading import (
    WashPatternType,
    WashTradingResult,
    detect_wash_trading,
)
from backend_txrisk.analysis_engine.bot_behavior import (
    BotBehaviorResult,
    BotPatternType,
    analyze_parameter_consistency,
    analyze_timing,
    detect_bot_behavior,
)
from backend_txrisk.analysis_engine.coordination import (
    CoordinatedActivityResult,
    CoordinationPatternType,
    analyze_parameter_matching,
    detect_coordinated_activity,
)
from backend_txrisk.analysis_engine.detector import (
    AnomalyDetectionResult,
    AnomalyFlags,
    detect_anomalies,
)

__all__ = [
    "AnomalyDetectionResult",
    "AnomalyFlags",
    "AnomalyType",
    "BotBehaviorResult",
    "BotPatternType",
    "CoordinatedActivityResult",
    "CoordinationPatternType",
    "RiskLevel",
    "StatisticalAnomaly",
    "StatisticalMethod",
    "TransactionRecord",
    "UserProfile",
    "WashPatternType",
    "WashTradingResult",
    "analyze_parameter_consistency",
    "analyze_parameter_matching",
    "analyze_timing",
    "detect_anomalies",
    "detect_bot_behavior",
    "detect_coordinated_activity",
    "detect_statistical_anomalies",
    "detect_wash_trading",
    "sort_by_time",
]
