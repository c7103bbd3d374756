"""
Tests for coordinated activity detection and exact parameter matching.
"""

from __future__ import annotations

import pytest

from backend_txrisk.analysis_engine.coordination import (
    INSUFFICIENT_HISTORY,
    RISK_WEIGHTS,
    SCORE_WEIGHTS,
    CoordinationPatternType,
    analyze_parameter_matching,
    detect_coordinated_activity,
)

DAY = 86400


def test_weights_cover_every_pattern():
    """Score and risk tables cover every pattern type."""
    assert set(SCORE_WEIGHTS) == set(CoordinationPatternType)
    assert set(RISK_WEIGHTS) == set(CoordinationPatternType)


def test_short_history(make_tx):
    """Fewer than 3 transactions is not analysed."""
    result = detect_coordinated_activity([make_tx("0xa", 0), make_tx("0xb", 10)])
    assert result.detected is False
    assert result.coordination_score == 0.0
    assert result.explanation == INSUFFICIENT_HISTORY


def test_synchronized_identical_gas(make_tx):
    """Five transactions a minute apart at one gas price look coordinated."""
    txs = [make_tx(f"0x{i}", i * 60, gas_price="30") for i in range(5)]

    result = detect_coordinated_activity(txs)

    types = {p.pattern_type for p in result.coordination_patterns}
    assert result.detected is True
    assert CoordinationPatternType.SYNCHRONIZED_TIMING in types
    assert CoordinationPatternType.IDENTICAL_PARAMETERS in types
    assert len(result.synchronized_transactions) == 1
    group = result.synchronized_transactions[0]
    assert group.transactions == [f"0x{i}" for i in range(5)]
    assert group.time_window == 240.0
    assert group.synchronization_score == pytest.approx(20.0)
    assert 0 <= result.coordination_score <= 100
    assert 0 <= result.risk_score <= 100
    assert result.explanation.startswith("Coordination patterns detected")


def test_independent_history(make_tx):
    """Spread-out transactions with distinct parameters show no coordination."""
    txs = [
        make_tx("0xa", 0, value="0.3137", gas_price="12", gas_used="21000"),
        make_tx("0xb", DAY, value="1.7241", gas_price="35", gas_used="64000"),
        make_tx("0xc", 3 * DAY, value="0.0519", gas_price="20", gas_used="120000"),
        make_tx("0xd", 7 * DAY, value="4.2113", gas_price="80", gas_used="45000"),
    ]

    result = detect_coordinated_activity(txs)

    assert result.detected is False
    assert result.coordination_patterns == []
    assert result.synchronized_transactions == []
    assert result.coordination_score == 0.0
    assert result.explanation.startswith("No significant coordination")


def test_parameter_matching_groups(make_tx):
    """Exact gas price strings repeated three or more times form a matching group."""
    txs = [make_tx(f"0x{i}", i * DAY, gas_price="30", gas_used=str(21000 + i)) for i in range(4)]
    txs.append(make_tx("0xz", 9 * DAY, gas_price="31", gas_used="99999"))

    matching = analyze_parameter_matching(txs)

    assert len(matching.gas_price_matching) == 1
    group = matching.gas_price_matching[0]
    assert group.value == "30"
    assert group.transaction_count == 4
    assert group.percentage == pytest.approx(80.0)
    assert group.suspicion_score == 90.0
    assert matching.gas_limit_matching == []
    # Default value "1.0" repeats on all five transactions
    assert matching.amount_matching[0].transaction_count == 5


def test_parameter_matching_empty(make_tx):
    """No repeated values scores 0."""
    txs = [
        make_tx(f"0x{i}", i, value=str(i + 1), gas_price=str(10 + i), gas_used=str(21000 + i))
        for i in range(3)
    ]
    matching = analyze_parameter_matching(txs)
    assert matching.overall_matching_score == 0.0
    assert matching.to_dict()["gas_price_matching"] == []
