"""
Tests for the statistics kernel: population moments, quartiles, degenerate input.
"""

from __future__ import annotations

import pytest

from backend_txrisk.analysis_engine import stats


def test_population_moments():
    """mean / variance / std_dev divide by n."""
    values = [2, 4, 4, 4, 5, 5, 7, 9]
    assert stats.mean(values) == pytest.approx(5.0)
    assert stats.variance(values) == pytest.approx(4.0)
    assert stats.std_dev(values) == pytest.approx(2.0)


def test_empty_samples_return_zero():
    """Empty input never raises."""
    assert stats.mean([]) == 0.0
    assert stats.variance([]) == 0.0
    assert stats.std_dev([]) == 0.0
    assert stats.z_scores([]) == []
    assert stats.quartiles([]) == (0.0, 0.0, 0.0)
    assert stats.intervals([5]) == []


def test_z_score_zero_sigma():
    """Zero standard deviation yields z = 0 so nothing is flagged."""
    assert stats.z_score(10.0, 5.0, 0.0) == 0.0
    assert stats.z_scores([3, 3, 3]) == [0.0, 0.0, 0.0]
    assert stats.z_score(9.0, 5.0, 2.0) == pytest.approx(2.0)
    assert stats.z_score(1.0, 5.0, 2.0) == pytest.approx(2.0)


def test_quartiles_use_index_positions():
    """q1 = sorted[floor(n/4)], q3 = sorted[floor(3n/4)]."""
    q1, q3, iqr = stats.quartiles([8, 1, 7, 2, 6, 3, 5, 4])
    assert (q1, q3, iqr) == (3.0, 7.0, 4.0)
    lower, upper = stats.iqr_bounds([1, 2, 3, 4, 5, 6, 7, 8], 1.5)
    assert lower == pytest.approx(-3.0)
    assert upper == pytest.approx(13.0)


def test_coefficient_of_variation_fallbacks():
    """CV uses the caller's fallback when the mean is zero."""
    assert stats.coefficient_of_variation([]) == 0.0
    assert stats.coefficient_of_variation([0, 0], zero_mean_value=1.0) == 1.0
    assert stats.coefficient_of_variation([2, 2, 2]) == 0.0
    assert stats.coefficient_of_variation([1, 3]) == pytest.approx(0.5)


def test_intervals_sorted():
    """Intervals are taken over sorted timestamps."""
    assert stats.intervals([30, 10, 20]) == [10.0, 10.0]


def test_amount_similarity_and_clamp():
    """Similarity is min/max; both zero counts as identical."""
    assert stats.amount_similarity(0, 0) == 1.0
    assert stats.amount_similarity(0, 1) == 0.0
    assert stats.amount_similarity(1, 2) == pytest.approx(0.5)
    assert stats.clamp(150) == 100.0
    assert stats.clamp(-5) == 0.0
    assert stats.clamp(42.5) == 42.5
