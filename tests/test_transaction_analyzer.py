"""
Tests for per-transaction analysis, gas efficiency, temporal patterns and efficiency recommendations.
"""

from __future__ import annotations

import pytest

from backend_txrisk.analytics.categorizer import SophisticationLevel, TransactionCategory
from backend_txrisk.analytics.transaction_analyzer import (
    ActivityPattern,
    GasRating,
    Intent,
    MarketContext,
    TransactionRiskType,
    TransactionTiming,
    analyze_temporal_patterns,
    analyze_transaction,
    gas_efficiency,
    generate_efficiency_recommendations,
)
from backend_txrisk.analysis_engine.models import RiskLevel

HOUR = 3600
ONE_INCH_V5 = "0x1111111254EEB25477B68fb85Ed929f73A960582"


@pytest.mark.parametrize(
    "gwei, score, rating",
    [
        ("15", 92.0, GasRating.EXCELLENT),
        ("30", 83.0, GasRating.GOOD),
        ("75", 55.0, GasRating.AVERAGE),
        ("150", 20.0, GasRating.POOR),
        ("400", 0.0, GasRating.POOR),
    ],
)
def test_gas_efficiency_bands(make_tx, gwei, score, rating):
    """Gas price bands map to rounded scores."""
    assert gas_efficiency(make_tx("0x1", 0, gas_price=gwei)) == (score, rating)


def test_gas_efficiency_market_adjustment(make_tx):
    """Market context shifts the score by at most 20 and stays within [0, 100]."""
    cheap = make_tx("0x1", 0, gas_price="15")
    dear = make_tx("0x2", 0, gas_price="300")
    market = MarketContext(average_gas_price=30)
    assert gas_efficiency(cheap, market) == (100.0, GasRating.EXCELLENT)
    assert gas_efficiency(dear, market) == (0.0, GasRating.POOR)
    # Market average equal to the price changes nothing
    assert gas_efficiency(cheap, MarketContext(average_gas_price=15))[0] == 92.0


def test_analyze_transaction_risk_factors(make_tx):
    """A large, expensive transaction raises concentration and gas volatility factors."""
    history = [make_tx(f"0xh{i}", i * HOUR, value="1", gas_price="10") for i in range(5)]
    tx = make_tx("0xbig", 5 * HOUR, value="10", gas_price="100")

    analysis = analyze_transaction(tx, history)

    types = {f.type: f for f in analysis.risk_factors}
    assert set(types) == {TransactionRiskType.CONCENTRATION, TransactionRiskType.VOLATILITY}
    assert types[TransactionRiskType.CONCENTRATION].severity is RiskLevel.HIGH
    assert types[TransactionRiskType.VOLATILITY].severity is RiskLevel.HIGH
    assert types[TransactionRiskType.VOLATILITY].indicators == [
        "Gas price significantly higher than average"
    ]
    assert analysis.risk_score == 100.0
    assert analysis.gas_optimization_rating is GasRating.AVERAGE
    assert analysis.temporal_pattern is TransactionTiming.REGULAR
    assert analysis.is_outlier is False
    assert analysis.to_dict()["hash"] == "0xbig"


def test_analyze_transaction_without_history(make_tx):
    """No history: no factors, isolated timing."""
    analysis = analyze_transaction(make_tx("0x1", 0, value="0.2"), [])
    assert analysis.risk_factors == []
    assert analysis.risk_score == 0.0
    assert analysis.temporal_pattern is TransactionTiming.ISOLATED
    assert analysis.timing_consistency == 0.0
    assert analysis.category is TransactionCategory.TRANSFER
    assert analysis.sophistication_level is SophisticationLevel.BASIC
    assert analysis.intent_classification is Intent.UTILITY


def test_sophistication_and_intent(make_tx):
    """Registry protocols set sophistication; staking is an investment; big lone DeFi is speculation."""
    swap = analyze_transaction(make_tx("0x1", 0, to_address=ONE_INCH_V5), [])
    assert swap.sophistication_level is SophisticationLevel.EXPERT
    assert swap.protocol_name == "1inch V5 Router"

    heavy = analyze_transaction(make_tx("0x2", 0, value="0", gas_used="600000"), [])
    assert heavy.sophistication_level is SophisticationLevel.EXPERT

    stake = analyze_transaction(make_tx("0x3", 0, is_staking=True), [])
    assert stake.intent_classification is Intent.INVESTMENT

    lending = analyze_transaction(make_tx("0x4", 0, protocol_name="Aave V3"), [])
    assert lending.intent_classification is Intent.INVESTMENT
    assert lending.sophistication_level is SophisticationLevel.ADVANCED

    punt = analyze_transaction(make_tx("0x5", 0, value="5", is_defi=True), [])
    assert punt.intent_classification is Intent.SPECULATION


def test_arbitrage_intent(make_tx):
    """Several DeFi transactions within the hour classify as arbitrage."""
    history = [make_tx(f"0xh{i}", i * 60, is_defi=True) for i in range(3)]
    tx = make_tx("0xa", 200, value="2", is_defi=True)
    assert analyze_transaction(tx, history).intent_classification is Intent.ARBITRAGE


def test_temporal_patterns_regular(make_tx):
    """Hourly transactions are regular with full consistency."""
    txs = [make_tx(f"0x{i}", i * HOUR) for i in range(10)]

    temporal = analyze_temporal_patterns(txs)

    assert temporal.pattern_type is ActivityPattern.REGULAR
    assert temporal.consistency_score == 100.0
    assert temporal.average_interval_hours == 1.0
    assert temporal.anomalous_transactions == []
    assert temporal.peak_activity_hours == list(range(10))


def test_temporal_patterns_growing_and_short(make_tx):
    """Shrinking intervals are GROWING; fewer than two transactions is DECLINING."""
    times = [0, 10_000, 20_000, 30_000, 40_000, 40_100, 40_200, 40_300, 40_400, 40_500]
    txs = [make_tx(f"0x{i}", t) for i, t in enumerate(times)]
    assert analyze_temporal_patterns(txs).pattern_type is ActivityPattern.GROWING

    short = analyze_temporal_patterns([make_tx("0x1", 0)])
    assert short.pattern_type is ActivityPattern.DECLINING
    assert short.consistency_score == 0.0
    assert short.to_dict()["anomalous_transactions"] == []


def test_efficiency_recommendations(make_tx):
    """Expensive gas is POOR with tooling and congestion advice; empty history is zeros."""
    txs = [make_tx(f"0x{i}", i * HOUR, gas_price="150") for i in range(5)]

    metrics = generate_efficiency_recommendations(txs)

    assert metrics.gas_efficiency_score == 20.0
    assert metrics.gas_optimization_level is GasRating.POOR
    assert metrics.average_gas_price == 150.0
    assert metrics.cost_savings_potential == 100.0
    assert metrics.timing_optimization == 100.0
    assert len(metrics.recommendations) == 2

    empty = generate_efficiency_recommendations([])
    assert empty.gas_efficiency_score == 0.0
    assert empty.gas_optimization_level is GasRating.POOR
    assert empty.recommendations == []
