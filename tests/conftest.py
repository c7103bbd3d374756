"""
Pytest fixtures for TxRisk tests. Builders for transaction records and profiles.
"""

from __future__ import annotations

import pytest

from backend_txrisk.analysis_engine.models import TransactionRecord, UserProfile
from backend_txrisk.config.settings import EngineSettings

NOW_TS = 1_700_000_000


@pytest.fixture
def make_tx():
    """Factory for TransactionRecord with gas in Gwei and value in ETH given as numbers."""

    def _build(
        hash: str,
        timestamp: int,
        value: float | str = "1.0",
        gas_price: float | str = "30",
        gas_used: int | str = "21000",
        **kwargs,
    ) -> TransactionRecord:
        return TransactionRecord(
            hash=hash,
            timestamp=int(timestamp),
            value=str(value),
            gas_price=str(gas_price),
            gas_used=str(gas_used),
            **kwargs,
        )

    return _build


@pytest.fixture
def make_profile():
    """Factory for UserProfile; defaults describe an established, active account."""

    def _build(**overrides) -> UserProfile:
        data = {
            "account_age_days": 365,
            "total_transactions": 100,
            "total_volume": "50",
            "avg_transaction_value": "0.5",
            "last_transaction_date": NOW_TS,
            "staking_balance": "0",
            "defi_protocols_used": ("Uniswap", "Aave", "Compound"),
        }
        data.update(overrides)
        return UserProfile(**data)

    return _build


@pytest.fixture
def settings():
    """Sequential detector settings, independent of the environment."""
    return EngineSettings(parallel_detectors=False)


@pytest.fixture
def now_ts():
    return NOW_TS


def _bounded_fields(node, path="$"):
    """Yield (path, value) for every numeric score, confidence or strength field."""
    if isinstance(node, dict):
        for key, value in node.items():
            child = f"{path}.{key}"
            if (
                ("score" in key or "confidence" in key or key == "strength")
                and isinstance(value, (int, float))
                and not isinstance(value, bool)
            ):
                yield child, value
            else:
                yield from _bounded_fields(value, child)
    elif isinstance(node, (list, tuple)):
        for i, item in enumerate(node):
            yield from _bounded_fields(item, f"{path}[{i}]")


@pytest.fixture
def assert_bounded():
    """Assert every score/confidence/strength in a to_dict() tree is in [0, 100]; returns the count checked."""

    def _check(tree) -> int:
        fields = list(_bounded_fields(tree))
        out_of_range = [(p, v) for p, v in fields if not 0 <= v <= 100]
        assert out_of_range == []
        return len(fields)

    return _check
