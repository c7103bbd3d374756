"""
Tests for transaction categorization: protocol registry, fallback heuristics, statistics, patterns.
"""

from __future__ import annotations

import pytest

from backend_txrisk.analytics.categorizer import (
    PROTOCOL_REGISTRY,
    ProtocolType,
    SophisticationLevel,
    SophisticationTrend,
    TransactionCategory,
    categorize_transaction,
    detect_transaction_patterns,
    get_category_statistics,
    get_protocols_by_type,
    lookup_protocol,
    search_protocols,
)

UNISWAP_V2 = "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D"
ONE_INCH_V5 = "0x1111111254EEB25477B68fb85Ed929f73A960582"


def test_registry_lookup_case_insensitive():
    """Registry keys are lowercase; lookups accept any case."""
    assert len(PROTOCOL_REGISTRY) == 27
    info = lookup_protocol(UNISWAP_V2.upper().replace("0X", "0x"))
    assert info is not None
    assert info.name == "Uniswap V2 Router"
    assert lookup_protocol(None) is None
    assert lookup_protocol("0xnotaprotocol") is None


def test_registry_is_read_only():
    """The registry cannot be mutated."""
    with pytest.raises(TypeError):
        PROTOCOL_REGISTRY["0xabc"] = PROTOCOL_REGISTRY[UNISWAP_V2.lower()]


def test_search_and_type_filter():
    """Search matches names and tags; type filter returns every protocol of that type."""
    assert {p.name for p in search_protocols("UNISWAP")} == {
        "Uniswap V2 Router",
        "Uniswap V3 Router",
        "Uniswap V3 Router 2",
    }
    assert len(search_protocols("layer2")) == 4
    assert search_protocols("no-such-protocol") == []
    assert len(get_protocols_by_type(ProtocolType.STAKING)) == 5


def test_registry_hit(make_tx):
    """Known recipients resolve with confidence 95 and protocol details."""
    result = categorize_transaction(make_tx("0x1", 0, to_address=UNISWAP_V2.lower()))
    assert result.primary is TransactionCategory.DEFI_SWAP
    assert result.confidence == 95.0
    assert result.protocol_name == "Uniswap V2 Router"
    assert result.protocol_type is ProtocolType.DEX
    assert result.sophistication_level is SophisticationLevel.INTERMEDIATE
    assert "uniswap" in result.tags


def test_flag_fallbacks(make_tx):
    """Unknown recipients fall back to staking, then DeFi flags."""
    staking = categorize_transaction(make_tx("0x1", 0, is_staking=True, is_defi=True))
    assert staking.primary is TransactionCategory.STAKING
    assert staking.subcategory == "Unknown Staking Protocol"
    assert staking.confidence == 80.0
    assert staking.protocol_name is None

    defi = categorize_transaction(make_tx("0x2", 0, is_defi=True, protocol_name="Balancer"))
    assert defi.primary is TransactionCategory.DEFI_SWAP
    assert defi.subcategory == "Balancer"
    assert defi.confidence == 75.0


@pytest.mark.parametrize(
    "value, gas_used, category, subcategory, level",
    [
        ("2", "21000", TransactionCategory.TRANSFER, "Large Transfer", SophisticationLevel.BASIC),
        ("0.5", "21000", TransactionCategory.TRANSFER, "Standard Transfer", SophisticationLevel.BASIC),
        ("0", "250000", TransactionCategory.CONTRACT_INTERACTION, "Contract Interaction",
         SophisticationLevel.ADVANCED),
        ("0", "80000", TransactionCategory.CONTRACT_INTERACTION, "Contract Interaction",
         SophisticationLevel.INTERMEDIATE),
        ("0.5", "100000", TransactionCategory.CONTRACT_INTERACTION,
         "Contract Interaction with Value", SophisticationLevel.INTERMEDIATE),
        ("0", "21000", TransactionCategory.UNKNOWN, "Unknown Transaction Type",
         SophisticationLevel.BASIC),
    ],
)
def test_value_gas_heuristics(make_tx, value, gas_used, category, subcategory, level):
    """Value / gas-used quadrants for unknown recipients."""
    result = categorize_transaction(make_tx("0x1", 0, value=value, gas_used=gas_used))
    assert result.primary is category
    assert result.subcategory == subcategory
    assert result.sophistication_level is level


def test_category_statistics(make_tx):
    """Counts per category and protocol plus average confidence."""
    txs = [
        make_tx("0x1", 0, to_address=UNISWAP_V2),
        make_tx("0x2", 1, to_address=UNISWAP_V2),
        make_tx("0x3", 2, value="0.2"),
    ]

    summary = get_category_statistics(txs)

    assert summary.total_transactions == 3
    assert summary.category_breakdown[TransactionCategory.DEFI_SWAP] == 2
    assert summary.category_breakdown[TransactionCategory.TRANSFER] == 1
    assert summary.protocol_type_breakdown[ProtocolType.DEX] == 2
    assert summary.top_protocols == [("Uniswap V2 Router", 2)]
    assert summary.average_confidence == pytest.approx((95 + 95 + 90) / 3)
    assert summary.to_dict()["top_protocols"] == [{"name": "Uniswap V2 Router", "count": 2}]


def test_patterns_empty():
    """No transactions: UNKNOWN, stable, low."""
    patterns = detect_transaction_patterns([])
    assert patterns.dominant_category is TransactionCategory.UNKNOWN
    assert patterns.dominant_protocol_type is None
    assert patterns.sophistication_trend is SophisticationTrend.STABLE
    assert patterns.risk_profile == "LOW"
    assert patterns.patterns == []


def test_patterns_expert_dex_trader(make_tx):
    """Aggregator swaps make a heavy, advanced DEX trader with HIGH risk profile."""
    txs = [make_tx(f"0x{i}", i, to_address=ONE_INCH_V5) for i in range(6)]

    patterns = detect_transaction_patterns(txs)

    assert patterns.dominant_category is TransactionCategory.DEFI_SWAP
    assert patterns.dominant_protocol_type is ProtocolType.DEX
    assert patterns.risk_profile == "HIGH"
    assert "Heavy DEX trader" in patterns.patterns
    assert "Advanced DeFi user" in patterns.patterns
    assert patterns.is_diversified is False


def test_sophistication_trend_uses_time_order(make_tx):
    """Transfers early and aggregator swaps late is an increasing trend, whatever the list order."""
    early = [make_tx(f"0xe{i}", i, value="0.1") for i in range(10)]
    late = [make_tx(f"0xl{i}", 100 + i, to_address=ONE_INCH_V5) for i in range(10)]

    patterns = detect_transaction_patterns(late + early)

    assert patterns.sophistication_trend is SophisticationTrend.INCREASING
