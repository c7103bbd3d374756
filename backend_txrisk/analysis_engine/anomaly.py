"""
Statistical anomaly detection over a transaction history.

Applies z-score and IQR outlier tests to four series: transaction amounts,
gas prices, inter-transaction intervals, and daily transaction counts.
Each rule is independent and explainable: every anomaly records the method,
threshold, actual value, expected range and the transactions it implicates.
Low-confidence anomalies (<= 50) are dropped.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Sequence

from backend_txrisk.analysis_engine import stats
from backend_txrisk.analysis_engine.models import RiskLevel, TransactionRecord, sort_by_time
from backend_txrisk.config.settings import StatisticalConfig
from backend_txrisk.txrisk_logging import get_logger

logger = get_logger(__name__)


class AnomalyType(str, Enum):
    AMOUNT = "AMOUNT"
    GAS_PRICE = "GAS_PRICE"
    TIMING = "TIMING"
    FREQUENCY = "FREQUENCY"
    PATTERN = "PATTERN"


class StatisticalMethod(str, Enum):
    Z_SCORE = "Z_SCORE"
    IQR = "IQR"
    ISOLATION_FOREST = "ISOLATION_FOREST"
    CLUSTERING = "CLUSTERING"


@dataclass
class StatisticalAnomaly:
    """
    One statistical outlier.

    score and confidence are in [0, 100]; expected_range is the band a
    normal value would fall into under the method used.
    """

    type: AnomalyType
    severity: RiskLevel
    score: float
    confidence: float
    description: str
    statistical_method: StatisticalMethod
    threshold: float
    actual_value: float
    expected_range: tuple[float, float]
    affected_transactions: list[str]
    evidence: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "score": self.score,
            "confidence": self.confidence,
            "description": self.description,
            "statistical_method": self.statistical_method.value,
            "threshold": self.threshold,
            "actual_value": self.actual_value,
            "expected_range": {"min": self.expected_range[0], "max": self.expected_range[1]},
            "affected_transactions": list(self.affected_transactions),
            "evidence": list(self.evidence),
        }


def _check_amounts(
    transactions: Sequence[TransactionRecord],
    cfg: StatisticalConfig,
) -> list[StatisticalAnomaly]:
    """
    Z-score pass (CRITICAL >= z_critical, HIGH >= z_high), then an extreme IQR
    pass that skips transactions already flagged by z-score.
    """
    if len(transactions) < cfg.min_transactions_zscore:
        return []
    amounts = [tx.amount for tx in transactions]
    mu = stats.mean(amounts)
    sigma = stats.std_dev(amounts)
    found: list[StatisticalAnomaly] = []

    if sigma > 0:
        for tx, amount in zip(transactions, amounts):
            z = stats.z_score(amount, mu, sigma)
            if z >= cfg.z_critical:
                found.append(
                    StatisticalAnomaly(
                        type=AnomalyType.AMOUNT,
                        severity=RiskLevel.CRITICAL,
                        score=min(100.0, z * 20),
                        confidence=95.0,
                        description=(
                            f"Transaction amount {amount:.4f} ETH is {z:.2f} "
                            "standard deviations from mean"
                        ),
                        statistical_method=StatisticalMethod.Z_SCORE,
                        threshold=cfg.z_critical,
                        actual_value=amount,
                        expected_range=(mu - cfg.z_critical * sigma, mu + cfg.z_critical * sigma),
                        affected_transactions=[tx.hash],
                        evidence=[
                            f"Z-score: {z:.2f}",
                            f"Mean amount: {mu:.4f} ETH",
                            f"Standard deviation: {sigma:.4f} ETH",
                        ],
                    )
                )
            elif z >= cfg.z_high:
                found.append(
                    StatisticalAnomaly(
                        type=AnomalyType.AMOUNT,
                        severity=RiskLevel.HIGH,
                        score=min(100.0, z * 15),
                        confidence=85.0,
                        description=(
                            f"Transaction amount {amount:.4f} ETH significantly "
                            "deviates from normal pattern"
                        ),
                        statistical_method=StatisticalMethod.Z_SCORE,
                        threshold=cfg.z_high,
                        actual_value=amount,
                        expected_range=(mu - cfg.z_high * sigma, mu + cfg.z_high * sigma),
                        affected_transactions=[tx.hash],
                        evidence=[f"Z-score: {z:.2f}", "Deviation from normal range"],
                    )
                )

    q1, q3, iqr = stats.quartiles(amounts)
    lower, upper = stats.iqr_bounds(amounts, cfg.iqr_multiplier)
    flagged = {h for a in found for h in a.affected_transactions}
    for tx, amount in zip(transactions, amounts):
        if lower <= amount <= upper or tx.hash in flagged:
            continue
        flagged.add(tx.hash)
        found.append(
            StatisticalAnomaly(
                type=AnomalyType.AMOUNT,
                severity=RiskLevel.HIGH,
                score=75.0,
                confidence=80.0,
                description=f"Transaction amount {amount:.4f} ETH is an extreme outlier (IQR method)",
                statistical_method=StatisticalMethod.IQR,
                threshold=cfg.iqr_multiplier,
                actual_value=amount,
                expected_range=(lower, upper),
                affected_transactions=[tx.hash],
                evidence=[
                    "Amount outside IQR bounds",
                    f"Q1: {q1:.4f}, Q3: {q3:.4f}, IQR: {iqr:.4f}",
                ],
            )
        )
    return found


def _check_gas_prices(
    transactions: Sequence[TransactionRecord],
    cfg: StatisticalConfig,
) -> list[StatisticalAnomaly]:
    if len(transactions) < cfg.min_transactions_zscore:
        return []
    prices = [tx.gas_price_gwei for tx in transactions]
    mu = stats.mean(prices)
    sigma = stats.std_dev(prices)
    if sigma == 0:
        return []
    found: list[StatisticalAnomaly] = []
    for tx, price in zip(transactions, prices):
        z = stats.z_score(price, mu, sigma)
        if z < cfg.z_high:
            continue
        found.append(
            StatisticalAnomaly(
                type=AnomalyType.GAS_PRICE,
                severity=RiskLevel.CRITICAL if z >= cfg.z_critical else RiskLevel.HIGH,
                score=min(100.0, z * 15),
                confidence=80.0,
                description=(
                    f"Gas price {price:.2f} Gwei deviates significantly "
                    "from user's normal pattern"
                ),
                statistical_method=StatisticalMethod.Z_SCORE,
                threshold=cfg.z_high,
                actual_value=price,
                expected_range=(mu - 2 * sigma, mu + 2 * sigma),
                affected_transactions=[tx.hash],
                evidence=[f"Z-score: {z:.2f}", f"User's average gas price: {mu:.2f} Gwei"],
            )
        )
    return found


def _check_timing(
    transactions: Sequence[TransactionRecord],
    cfg: StatisticalConfig,
) -> list[StatisticalAnomaly]:
    """Flag inter-arrival gaps that are unusually short or long."""
    if len(transactions) < cfg.min_transactions:
        return []
    ordered = sort_by_time(transactions)
    gaps = [float(b.timestamp - a.timestamp) for a, b in zip(ordered, ordered[1:])]
    if len(gaps) < 2:
        return []
    mu = stats.mean(gaps)
    sigma = stats.std_dev(gaps)
    if sigma == 0:
        return []
    found: list[StatisticalAnomaly] = []
    for i, gap in enumerate(gaps):
        z = stats.z_score(gap, mu, sigma)
        if z < cfg.z_high:
            continue
        kind = "Unusually short" if gap < mu else "Unusually long"
        found.append(
            StatisticalAnomaly(
                type=AnomalyType.TIMING,
                severity=RiskLevel.CRITICAL if z >= cfg.z_critical else RiskLevel.HIGH,
                score=min(100.0, z * 15),
                confidence=75.0,
                description=f"{kind} interval between transactions: {round(gap / 60)} minutes",
                statistical_method=StatisticalMethod.Z_SCORE,
                threshold=cfg.z_high,
                actual_value=gap,
                expected_range=(mu - 2 * sigma, mu + 2 * sigma),
                affected_transactions=[ordered[i].hash, ordered[i + 1].hash],
                evidence=[
                    f"Interval Z-score: {z:.2f}",
                    f"Average interval: {round(mu / 60)} minutes",
                ],
            )
        )
    return found


def _utc_day(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).date().isoformat()


def _check_frequency(
    transactions: Sequence[TransactionRecord],
    cfg: StatisticalConfig,
) -> list[StatisticalAnomaly]:
    """Flag UTC days with unusually many transactions (busy days only)."""
    if len(transactions) < cfg.min_transactions_frequency:
        return []
    by_day: dict[str, list[TransactionRecord]] = defaultdict(list)
    for tx in transactions:
        by_day[_utc_day(tx.timestamp)].append(tx)
    if len(by_day) < cfg.min_days_frequency:
        return []
    counts = [len(txs) for txs in by_day.values()]
    mu = stats.mean(counts)
    sigma = stats.std_dev(counts)
    if sigma == 0:
        return []
    found: list[StatisticalAnomaly] = []
    for day, day_txs in by_day.items():
        count = len(day_txs)
        z = stats.z_score(count, mu, sigma)
        if z < cfg.z_high or count <= mu:
            continue
        found.append(
            StatisticalAnomaly(
                type=AnomalyType.FREQUENCY,
                severity=RiskLevel.CRITICAL if z >= cfg.z_critical else RiskLevel.HIGH,
                score=min(100.0, z * 20),
                confidence=80.0,
                description=f"Unusually high transaction frequency on {day}: {count} transactions",
                statistical_method=StatisticalMethod.Z_SCORE,
                threshold=cfg.z_high,
                actual_value=float(count),
                expected_range=(0.0, mu + 2 * sigma),
                affected_transactions=[tx.hash for tx in day_txs],
                evidence=[
                    f"Daily frequency Z-score: {z:.2f}",
                    f"Average daily frequency: {mu:.1f} transactions",
                ],
            )
        )
    return found


def detect_statistical_anomalies(
    transactions: Sequence[TransactionRecord],
    config: StatisticalConfig | None = None,
) -> list[StatisticalAnomaly]:
    """
    Run all statistical outlier rules over a transaction history.

    A rule that raises fails the whole detector; detect_anomalies records it
    in failed_detectors and lowers confidence.

    Args:
        transactions: History of one address, any order.
        config: Thresholds; defaults if None.

    Returns:
        Anomalies with confidence above config.min_confidence, in rule order
        (amount, gas price, timing, frequency).
    """
    cfg = config or StatisticalConfig()
    anomalies: list[StatisticalAnomaly] = []

    for check in (_check_amounts, _check_gas_prices, _check_timing, _check_frequency):
        anomalies.extend(check(transactions, cfg))

    kept = [a for a in anomalies if a.confidence > cfg.min_confidence]
    logger.debug(
        "statistical_anomalies_checked",
        transactions=len(transactions),
        found=len(anomalies),
        kept=len(kept),
    )
    return kept
