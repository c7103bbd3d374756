"""
Tests for wash trading detection: rapid reversals, amount matching, pairs and circular chains.
"""

from __future__ import annotations

from backend_txrisk.analysis_engine.models import RiskLevel
from backend_txrisk.analysis_engine.wash_trading import (
    INSUFFICIENT_HISTORY,
    PATTERN_WEIGHTS,
    WashPatternType,
    detect_wash_trading,
)

DAY = 86400


def test_every_pattern_has_a_weight():
    """Risk scoring covers every pattern type."""
    assert set(PATTERN_WEIGHTS) == set(WashPatternType)


def test_short_history_not_detected(make_tx):
    """Fewer than 4 transactions returns the empty result with a reason."""
    result = detect_wash_trading([make_tx(f"0x{i}", i * 60) for i in range(3)])
    assert result.detected is False
    assert result.risk_score == 0.0
    assert result.severity is RiskLevel.LOW
    assert result.explanation == INSUFFICIENT_HISTORY


def test_rapid_reversal(make_tx):
    """Near-identical amounts back and forth within minutes are a rapid reversal."""
    txs = [
        make_tx("0xa", 0, value="1.000"),
        make_tx("0xb", 60, value="1.001"),
        make_tx("0xc", 90, value="0.999"),
        make_tx("0xd", 100_000, value="5.0"),
    ]

    result = detect_wash_trading(txs)

    reversals = [p for p in result.patterns if p.pattern_type is WashPatternType.RAPID_REVERSAL]
    assert len(reversals) == 1
    assert reversals[0].transactions == ["0xa", "0xb", "0xc"]
    assert reversals[0].confidence >= 85
    assert reversals[0].time_window == 90.0
    # Three close pairs of similar amounts
    assert len(result.suspicious_transaction_pairs) == 3
    assert result.detected is True
    assert result.explanation.startswith("Wash trading risk detected")


def test_input_order_irrelevant(make_tx):
    """Results depend on timestamps, not list order."""
    txs = [
        make_tx("0xa", 0, value="1.000"),
        make_tx("0xb", 60, value="1.001"),
        make_tx("0xc", 90, value="0.999"),
        make_tx("0xd", 100_000, value="5.0"),
    ]
    assert detect_wash_trading(txs).to_dict() == detect_wash_trading(txs[::-1]).to_dict()


def test_amount_matching_and_circular_chain(make_tx):
    """Three identical amounts within two hours match; equal spacing forms a circular chain."""
    txs = [
        make_tx("0xa", 0, value="2.5"),
        make_tx("0xb", 1000, value="2.5"),
        make_tx("0xc", 2000, value="2.5"),
        make_tx("0xd", 50_000, value="7"),
    ]

    result = detect_wash_trading(txs)

    types = {p.pattern_type for p in result.patterns}
    assert WashPatternType.AMOUNT_MATCHING in types
    assert len(result.circular_transaction_chains) == 1
    chain = result.circular_transaction_chains[0]
    assert chain.transactions == ["0xa", "0xb", "0xc"]
    assert chain.chain_length == 3
    assert chain.total_amount == 7.5
    assert chain.suspicion_level is RiskLevel.HIGH
    assert 0 <= result.risk_score <= 100
    assert 0 <= result.confidence <= 100


def test_unrelated_history_clean(make_tx):
    """Different amounts days apart show no wash trading."""
    txs = [
        make_tx("0xa", 0, value="1"),
        make_tx("0xb", 2 * DAY, value="5"),
        make_tx("0xc", 5 * DAY, value="20"),
        make_tx("0xd", 9 * DAY, value="0.3"),
    ]

    result = detect_wash_trading(txs)

    assert result.detected is False
    assert result.patterns == []
    assert result.suspicious_transaction_pairs == []
    assert result.circular_transaction_chains == []
    assert result.risk_score == 0.0
    assert result.explanation.startswith("No significant wash trading")
