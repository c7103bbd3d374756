"""
Tests for input records: payload parsing and boundary validation.
"""

from __future__ import annotations

import pytest

from backend_txrisk.analysis_engine.models import (
    RiskLevel,
    TransactionRecord,
    UserProfile,
    level_rank,
    sort_by_time,
)
from backend_txrisk.core.exceptions import InvalidProfileError, InvalidTransactionError


def test_transaction_from_camel_case_payload():
    """Ingestion payloads use camelCase keys; numeric strings parse on access."""
    tx = TransactionRecord.from_dict({
        "hash": "0x1",
        "timestamp": "1700000000",
        "value": "1.5",
        "gasPrice": "25",
        "gasUsed": "21000",
        "from": "0xaaa",
        "to": "0xbbb",
        "blockNumber": 18_000_000,
        "isDeFi": True,
    })
    assert tx.timestamp == 1_700_000_000
    assert tx.amount == 1.5
    assert tx.gas_price_gwei == 25.0
    assert tx.gas_used_int == 21000
    assert tx.is_defi is True
    assert tx.is_staking is False
    assert tx.to_dict()["to_address"] == "0xbbb"


def test_transaction_missing_fields_rejected():
    """Missing hash or a non-integer timestamp raises InvalidTransactionError."""
    with pytest.raises(InvalidTransactionError):
        TransactionRecord.from_dict({"timestamp": 1})
    with pytest.raises(InvalidTransactionError):
        TransactionRecord.from_dict({"hash": "0x1"})
    with pytest.raises(InvalidTransactionError):
        TransactionRecord.from_dict({"hash": "0x1", "timestamp": "yesterday"})


def test_empty_numeric_strings_are_zero():
    """Blank value and gas fields read as 0."""
    tx = TransactionRecord(hash="0x1", timestamp=0, value="", gas_price="", gas_used="")
    assert tx.amount == 0.0
    assert tx.gas_price_gwei == 0.0
    assert tx.gas_used_int == 0


def test_profile_from_dict():
    """Profiles accept camelCase or snake_case and normalise protocols to a tuple."""
    profile = UserProfile.from_dict({
        "accountAge": 120,
        "totalTransactions": 42,
        "totalVolume": "12.5",
        "stakingBalance": "3",
        "defiProtocolsUsed": ["Uniswap", "Aave"],
        "lastTransactionDate": 1_700_000_000,
    })
    assert profile.account_age_days == 120
    assert profile.defi_protocols_used == ("Uniswap", "Aave")
    assert profile.total_volume_eth == 12.5
    assert profile.staking_balance_eth == 3.0
    assert profile.first_transaction_date is None


def test_profile_invalid_rejected():
    """Missing age or unparseable counts raise InvalidProfileError."""
    with pytest.raises(InvalidProfileError):
        UserProfile.from_dict({"totalTransactions": 3})
    with pytest.raises(InvalidProfileError):
        UserProfile.from_dict({"accountAge": "old", "totalTransactions": 3})


def test_sort_by_time_is_stable(make_tx):
    """Equal timestamps keep their input order."""
    a = make_tx("a", 10)
    b = make_tx("b", 5)
    c = make_tx("c", 10)
    assert [t.hash for t in sort_by_time([a, b, c])] == ["b", "a", "c"]


def test_level_rank_order():
    """LOW < MEDIUM < HIGH < CRITICAL."""
    ranks = [level_rank(level) for level in RiskLevel]
    assert ranks == sorted(ranks)
    assert level_rank(RiskLevel.CRITICAL) == 3
