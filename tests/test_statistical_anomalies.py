"""
Tests for statistical anomaly rules: amount, gas price, timing and daily frequency outliers.
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from backend_txrisk.analysis_engine import anomaly
from backend_txrisk.analysis_engine.anomaly import (
    AnomalyType,
    StatisticalMethod,
    detect_statistical_anomalies,
)
from backend_txrisk.analysis_engine.models import RiskLevel
from backend_txrisk.config.settings import StatisticalConfig

DAY = 86400


def _steady(make_tx, n, **kwargs):
    return [make_tx(f"0x{i}", i * 3600, **kwargs) for i in range(n)]


def test_short_or_flat_history_has_no_anomalies(make_tx):
    """Two transactions, or identical ones, yield nothing."""
    assert detect_statistical_anomalies(_steady(make_tx, 2)) == []
    assert detect_statistical_anomalies(_steady(make_tx, 12)) == []


def test_amount_outlier_is_critical_z_score(make_tx):
    """One 100 ETH transfer among 19 of 1 ETH is a CRITICAL z-score anomaly, not double-counted by IQR."""
    txs = _steady(make_tx, 19, value="1.0")
    txs.append(make_tx("0xbig", 19 * 3600, value="100"))

    found = detect_statistical_anomalies(txs)

    assert len(found) == 1
    a = found[0]
    assert a.type is AnomalyType.AMOUNT
    assert a.severity is RiskLevel.CRITICAL
    assert a.statistical_method is StatisticalMethod.Z_SCORE
    assert a.affected_transactions == ["0xbig"]
    assert a.confidence == 95.0
    assert 80 < a.score <= 100
    assert a.actual_value == 100.0


def test_gas_price_outlier(make_tx):
    """A 500 Gwei transaction among 30 Gwei ones is flagged on gas price."""
    txs = _steady(make_tx, 19, gas_price="30")
    txs.append(make_tx("0xgas", 19 * 3600, gas_price="500"))

    found = detect_statistical_anomalies(txs)

    assert [a.type for a in found] == [AnomalyType.GAS_PRICE]
    assert found[0].severity is RiskLevel.CRITICAL
    assert found[0].affected_transactions == ["0xgas"]


def test_long_interval_flagged_with_both_ends(make_tx):
    """A single long gap among regular ones names the two transactions around it."""
    txs = [make_tx(f"0x{i}", i * 600) for i in range(11)]
    txs.append(make_tx("0xlate", 10 * 600 + 60_000))

    found = detect_statistical_anomalies(txs)

    assert len(found) == 1
    a = found[0]
    assert a.type is AnomalyType.TIMING
    assert a.affected_transactions == ["0x10", "0xlate"]
    assert a.description.startswith("Unusually long")


def test_busy_day_frequency(make_tx):
    """One UTC day with 10 transactions against seven quiet days is a frequency anomaly."""
    txs = [make_tx(f"0xd{d}", d * DAY + 3600) for d in range(7)]
    txs += [make_tx(f"0xb{i}", 7 * DAY + i * 60) for i in range(10)]

    found = [a for a in detect_statistical_anomalies(txs) if a.type is AnomalyType.FREQUENCY]

    assert len(found) == 1
    assert found[0].severity is RiskLevel.HIGH
    assert len(found[0].affected_transactions) == 10
    assert found[0].actual_value == 10.0


def test_min_confidence_filter(make_tx):
    """Anomalies at or below min_confidence are dropped."""
    txs = _steady(make_tx, 18, value="1.0", gas_price="30")
    txs.append(make_tx("0xbig", 18 * 3600, value="100", gas_price="30"))
    txs.append(make_tx("0xgas", 19 * 3600, value="1.0", gas_price="500"))
    strict = replace(StatisticalConfig(), min_confidence=90.0)

    types = {a.type for a in detect_statistical_anomalies(txs)}
    strict_types = {a.type for a in detect_statistical_anomalies(txs, strict)}

    assert types == {AnomalyType.AMOUNT, AnomalyType.GAS_PRICE}
    assert strict_types == {AnomalyType.AMOUNT}


def test_failing_rule_propagates(make_tx, monkeypatch):
    """A rule that raises is not swallowed; the caller sees the error."""

    def _broken(transactions, cfg):
        raise RuntimeError("boom")

    monkeypatch.setattr(anomaly, "_check_gas_prices", _broken)
    txs = _steady(make_tx, 19, gas_price="30")
    txs.append(make_tx("0xgas", 19 * 3600, gas_price="500"))

    with pytest.raises(RuntimeError, match="boom"):
        detect_statistical_anomalies(txs)


@pytest.mark.parametrize("n", [0, 1, 4])
def test_below_minimum_history(make_tx, n):
    """Histories below the z-test minimum never raise."""
    assert detect_statistical_anomalies(_steady(make_tx, n)) == []
