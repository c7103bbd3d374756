"""
Engine settings: immutable threshold tables for every detector and analyzer.

Responsibilities:
- Hold the numeric thresholds each component uses (one frozen dataclass per
  component) with production defaults.
- Compose them into EngineSettings together with runtime knobs read from
  the environment (parallel detectors, worker count).
- Expose get_settings() returning a cached, read-only EngineSettings.

Settings are values, not globals: callers pass them down explicitly and
tests build their own with dataclasses.replace().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache

from backend_txrisk.config.env import get_detector_workers, get_parallel_detectors

MIN_DETECTOR_WORKERS = 1


@dataclass(frozen=True)
class StatisticalConfig:
    """Thresholds for z-score / IQR outlier tests."""

    min_transactions: int = 3
    # Amount and gas-price z-tests are skipped below this many transactions.
    min_transactions_zscore: int = 5
    # Daily frequency test needs enough transactions and distinct days.
    min_transactions_frequency: int = 10
    min_days_frequency: int = 3
    z_critical: float = 3.0
    z_high: float = 2.5
    iqr_multiplier: float = 3.0
    # Anomalies at or below this confidence are dropped.
    min_confidence: float = 50.0


@dataclass(frozen=True)
class WashTradingConfig:
    """Thresholds for self-reversing and circular trade detection."""

    min_transactions: int = 4

    reversal_window_seconds: float = 3600.0
    reversal_adjacent_similarity: float = 0.9
    reversal_outer_similarity: float = 0.8

    matching_min_group: int = 3
    matching_min_amount: float = 0.01
    matching_window_seconds: float = 7200.0

    pair_window_seconds: float = 3600.0
    pair_min_amount: float = 0.01
    pair_min_similarity: float = 0.95
    pair_min_score: float = 70.0
    max_pairs: int = 10

    chain_window_seconds: float = 3600.0
    chain_min_similarity: float = 0.7
    chain_min_length: int = 3
    chain_max_length: int = 6
    chain_min_circularity: float = 60.0
    max_chains: int = 5

    timing_bucket_seconds: int = 300
    timing_min_group: int = 3
    timing_max_cv: float = 0.2

    detection_score: float = 60.0
    detection_patterns: int = 2
    detection_pairs: int = 1


@dataclass(frozen=True)
class BotBehaviorConfig:
    """Thresholds for automation (bot) detection."""

    min_transactions: int = 5
    burst_window_seconds: float = 600.0
    burst_min_transactions: int = 5
    # Intervals are rounded to this bucket when measuring regularity.
    regularity_bucket_seconds: float = 60.0
    identical_min_count: int = 3

    regular_intervals_threshold: float = 80.0
    identical_parameters_threshold: float = 70.0
    mechanical_regularity_threshold: float = 90.0
    mechanical_consistency_threshold: float = 80.0

    detection_probability: float = 70.0
    detection_strength: float = 80.0


@dataclass(frozen=True)
class CoordinationConfig:
    """Thresholds for intra-address coordination signals."""

    min_transactions: int = 3
    sync_window_seconds: float = 300.0
    sync_min_cluster: int = 3
    sync_min_strength: float = 30.0

    identical_min_ratio: float = 0.8
    identical_min_size: int = 3

    amounts_min_count: int = 3
    amounts_min_strength: float = 30.0

    network_min_transactions: int = 5
    network_min_strength: float = 25.0
    network_change_threshold: float = 0.1
    high_gas_gwei: float = 50.0

    matching_min_group: int = 3

    detection_score: float = 60.0
    detection_strength: float = 75.0


@dataclass(frozen=True)
class AnalyzerConfig:
    """Thresholds for single-transaction analysis and gas efficiency."""

    # Gwei bands: <= excellent, <= good, <= average, else poor.
    gas_excellent_gwei: float = 20.0
    gas_good_gwei: float = 50.0
    gas_average_gwei: float = 100.0
    gas_poor_gwei: float = 200.0
    market_adjustment_max: float = 20.0

    concentration_ratio: float = 0.5
    gas_deviation_medium: float = 2.0
    gas_deviation_high: float = 5.0
    timing_deviation_medium: float = 3.0
    timing_deviation_high: float = 10.0
    outlier_std_multiplier: float = 2.0

    burst_window_seconds: float = 3600.0
    burst_min_recent: int = 3
    regular_cv: float = 0.5
    burst_cv: float = 2.0

    expert_gas_used: int = 500_000
    advanced_gas_used: int = 200_000
    transfer_gas_used: int = 21_000
    large_transfer_eth: float = 1.0


@dataclass(frozen=True)
class RiskConfig:
    """Thresholds for the six-dimension risk aggregator."""

    # Percent of activity in one protocol / transaction type.
    protocol_concentration_high: float = 70.0
    protocol_concentration_critical: float = 90.0
    type_concentration_high: float = 80.0

    inactivity_warning_days: int = 30
    inactivity_high_days: int = 90
    inactivity_critical_days: int = 180

    new_account_days: int = 30
    very_new_account_days: int = 7
    limited_history_transactions: int = 10
    very_limited_history_transactions: int = 3

    # Staked balance over total volume.
    high_staking_ratio: float = 0.6
    very_high_staking_ratio: float = 0.8


@dataclass(frozen=True)
class EngineSettings:
    """
    Complete, immutable configuration for one engine call chain.

    parallel_detectors runs the four anomaly detectors on a thread pool of
    detector_workers threads; otherwise they run inline.
    """

    statistical: StatisticalConfig = field(default_factory=StatisticalConfig)
    wash_trading: WashTradingConfig = field(default_factory=WashTradingConfig)
    bot_behavior: BotBehaviorConfig = field(default_factory=BotBehaviorConfig)
    coordination: CoordinationConfig = field(default_factory=CoordinationConfig)
    analyzer: AnalyzerConfig = field(default_factory=AnalyzerConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    parallel_detectors: bool = True
    detector_workers: int = 4

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "detector_workers", max(MIN_DETECTOR_WORKERS, int(self.detector_workers))
        )


@lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    """
    Return the process-wide default settings.

    Built once from environment variables (TXRISK_PARALLEL_DETECTORS,
    TXRISK_DETECTOR_WORKERS); call get_settings.cache_clear() after changing env.
    """
    return EngineSettings(
        parallel_detectors=get_parallel_detectors(),
        detector_workers=get_detector_workers(),
    )
