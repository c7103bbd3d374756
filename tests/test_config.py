"""
Tests for engine settings and environment loading.
"""

from __future__ import annotations

import dataclasses

import pytest

from backend_txrisk.config.env import get_detector_workers, get_parallel_detectors
from backend_txrisk.config.settings import EngineSettings, StatisticalConfig, get_settings


@pytest.fixture
def fresh_settings():
    """Clear the settings cache around a test that changes env."""
    get_settings.cache_clear()
    yield get_settings
    get_settings.cache_clear()


def test_defaults():
    """Production defaults for thresholds and runtime knobs."""
    s = EngineSettings()
    assert s.statistical.z_critical == 3.0
    assert s.statistical.z_high == 2.5
    assert s.wash_trading.min_transactions == 4
    assert s.bot_behavior.min_transactions == 5
    assert s.coordination.min_transactions == 3
    assert s.risk.inactivity_critical_days == 180
    assert s.parallel_detectors is True
    assert s.detector_workers == 4


def test_settings_are_frozen():
    """Settings cannot be mutated; replace() builds variants."""
    s = EngineSettings()
    with pytest.raises(dataclasses.FrozenInstanceError):
        s.detector_workers = 8
    variant = dataclasses.replace(s.statistical, z_high=2.0)
    assert variant.z_high == 2.0
    assert StatisticalConfig().z_high == 2.5


def test_worker_count_clamped():
    """detector_workers is at least 1."""
    assert EngineSettings(detector_workers=0).detector_workers == 1
    assert EngineSettings(detector_workers=-3).detector_workers == 1


def test_env_overrides(monkeypatch, fresh_settings):
    """TXRISK_* env vars feed get_settings after cache_clear."""
    monkeypatch.setenv("TXRISK_PARALLEL_DETECTORS", "false")
    monkeypatch.setenv("TXRISK_DETECTOR_WORKERS", "8")

    s = fresh_settings()

    assert s.parallel_detectors is False
    assert s.detector_workers == 8
    assert fresh_settings() is s


@pytest.mark.parametrize(
    "raw, expected",
    [("", 4), ("2", 2), ("0", 1), ("many", 4)],
)
def test_detector_workers_env(monkeypatch, raw, expected):
    """Blank or invalid worker counts fall back to the default; values clamp to >= 1."""
    monkeypatch.setenv("TXRISK_DETECTOR_WORKERS", raw)
    assert get_detector_workers() == expected


@pytest.mark.parametrize(
    "raw, expected",
    [("", True), ("yes", True), ("0", False), ("OFF", False), ("maybe", True)],
)
def test_parallel_detectors_env(monkeypatch, raw, expected):
    """Recognised boolean strings parse; anything else keeps the default."""
    monkeypatch.setenv("TXRISK_PARALLEL_DETECTORS", raw)
    assert get_parallel_detectors() is expected
