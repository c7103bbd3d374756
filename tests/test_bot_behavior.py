"""
Tests for bot behavior detection: timing regularity, parameter consistency, bursts.
"""

from __future__ import annotations

import pytest

from backend_txrisk.analysis_engine.bot_behavior import (
    INSUFFICIENT_HISTORY,
    PATTERN_RISK,
    BotPatternType,
    analyze_parameter_consistency,
    analyze_timing,
    detect_bot_behavior,
)


def _metronome(make_tx, n=10, step=600):
    return [
        make_tx(f"0x{i}", i * step, value="0.5", gas_price="25", gas_used="21000")
        for i in range(n)
    ]


def test_every_pattern_has_risk_weight():
    """Risk scoring covers every pattern type."""
    assert set(PATTERN_RISK) == set(BotPatternType)


def test_mechanical_history_detected(make_tx):
    """Identical gaps and parameters are mechanical precision with a low human-like score."""
    result = detect_bot_behavior(_metronome(make_tx))

    types = {p.pattern_type for p in result.behavior_patterns}
    assert result.detected is True
    assert BotPatternType.MECHANICAL_PRECISION in types
    assert BotPatternType.REGULAR_INTERVALS in types
    assert BotPatternType.IDENTICAL_PARAMETERS in types
    assert result.timing_analysis.regularity_score == 100.0
    assert result.timing_analysis.human_like_score < 40
    assert result.parameter_consistency.overall_consistency_score == 100.0
    assert 0 <= result.bot_probability <= 100
    assert 0 <= result.risk_score <= 100


def test_human_history_not_detected(make_tx):
    """Irregular gaps with varied gas and amounts look human."""
    times = [0, 3000, 50_000, 52_000, 200_000, 450_000]
    gas = ["12", "35", "20", "80", "15", "50"]
    used = ["21000", "150000", "90000", "21000", "300000", "60000"]
    values = ["0.3", "1.7", "0.05", "4.2", "0.9", "2.6"]
    txs = [
        make_tx(f"0x{i}", t, value=v, gas_price=g, gas_used=u)
        for i, (t, g, u, v) in enumerate(zip(times, gas, used, values))
    ]

    result = detect_bot_behavior(txs)

    assert result.detected is False
    assert result.behavior_patterns == []
    assert result.timing_analysis.human_like_score > 60
    assert result.explanation.startswith("No significant bot behavior")


def test_short_history_neutral(make_tx):
    """Fewer than 5 transactions: not detected, human-like score 100."""
    result = detect_bot_behavior(_metronome(make_tx, n=4))
    assert result.detected is False
    assert result.timing_analysis.human_like_score == 100.0
    assert result.explanation == INSUFFICIENT_HISTORY


def test_burst_activity(make_tx):
    """Twelve transactions thirty seconds apart form one high-intensity burst."""
    txs = [
        make_tx(f"0x{i}", i * 30, value=str(0.1 * (i + 1)), gas_price=str(20 + i))
        for i in range(12)
    ]

    timing = analyze_timing(txs)
    result = detect_bot_behavior(txs)

    assert len(timing.burst_patterns) == 1
    assert timing.burst_patterns[0].transaction_count == 12
    assert timing.burst_patterns[0].burst_intensity == pytest.approx(1.2)
    assert BotPatternType.BURST_ACTIVITY in {p.pattern_type for p in result.behavior_patterns}


def test_arithmetic_progression_amounts(make_tx):
    """Evenly stepped amounts score 50 on amount consistency."""
    txs = [make_tx(f"0x{i}", i * 60, value=str(i + 1)) for i in range(5)]
    params = analyze_parameter_consistency(txs)
    assert params.amount_pattern_consistency == 50.0
    assert params.gas_price_consistency == 100.0
    assert params.gas_limit_consistency == 100.0


def test_identical_parameter_groups(make_tx):
    """Repeated gas prices are grouped with their share of the history."""
    txs = _metronome(make_tx, n=5)
    groups = analyze_parameter_consistency(txs).identical_parameter_groups
    assert {g.parameter_type.value for g in groups} == {"GAS_PRICE", "GAS_LIMIT", "AMOUNT"}
    assert all(g.percentage == 100.0 for g in groups)


def test_large_amounts_group_at_four_decimals(make_tx):
    """Amounts that differ in the fourth decimal stay separate, even above 1000 ETH."""
    values = ["1234.5678", "1234.5681", "1234.5712", "1234.5699", "1234.5655"]
    distinct = [
        make_tx(f"0x{i}", i * 60, value=v, gas_price=str(20 + i), gas_used=str(21000 + i))
        for i, v in enumerate(values)
    ]
    groups = analyze_parameter_consistency(distinct).identical_parameter_groups
    assert [g for g in groups if g.parameter_type.value == "AMOUNT"] == []

    repeated = [
        make_tx(f"0x{i}", i * 60, value="1234.5678", gas_price=str(20 + i), gas_used=str(21000 + i))
        for i in range(5)
    ]
    (group,) = analyze_parameter_consistency(repeated).identical_parameter_groups
    assert group.parameter_type.value == "AMOUNT"
    assert group.value == "1234.5678"
    assert group.transaction_count == 5
