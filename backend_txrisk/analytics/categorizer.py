"""
Transaction categorization by protocol registry and value/gas heuristics.

Known contract addresses resolve through a read-only registry (confidence
95). Anything else falls back to the ingestion flags (staking / DeFi) and
then to the value / gas-used quadrant. Also provides batch statistics and
coarse behavior patterns over a categorized history.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Sequence

from backend_txrisk.analysis_engine import stats
from backend_txrisk.analysis_engine.models import TransactionRecord, sort_by_time
from backend_txrisk.txrisk_logging import get_logger

logger = get_logger(__name__)

# Plain ETH transfers use exactly this much gas.
TRANSFER_GAS = 21_000
# Zero-value contract calls above this gas are ADVANCED.
ADVANCED_CONTRACT_GAS = 200_000


class TransactionCategory(str, Enum):
    TRANSFER = "TRANSFER"
    DEFI_SWAP = "DEFI_SWAP"
    DEFI_LIQUIDITY = "DEFI_LIQUIDITY"
    DEFI_LENDING = "DEFI_LENDING"
    DEFI_BORROWING = "DEFI_BORROWING"
    STAKING = "STAKING"
    UNSTAKING = "UNSTAKING"
    NFT_TRADE = "NFT_TRADE"
    CONTRACT_INTERACTION = "CONTRACT_INTERACTION"
    TOKEN_APPROVAL = "TOKEN_APPROVAL"
    BRIDGE = "BRIDGE"
    GOVERNANCE = "GOVERNANCE"
    UNKNOWN = "UNKNOWN"


class ProtocolType(str, Enum):
    DEX = "DEX"
    LENDING = "LENDING"
    STAKING = "STAKING"
    YIELD_FARMING = "YIELD_FARMING"
    DERIVATIVES = "DERIVATIVES"
    INSURANCE = "INSURANCE"
    BRIDGE = "BRIDGE"
    DAO = "DAO"
    NFT_MARKETPLACE = "NFT_MARKETPLACE"
    GAMING = "GAMING"
    SOCIAL = "SOCIAL"


class SophisticationLevel(str, Enum):
    BASIC = "BASIC"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"
    EXPERT = "EXPERT"


SOPHISTICATION_RANK: Mapping[SophisticationLevel, int] = MappingProxyType({
    SophisticationLevel.BASIC: 1,
    SophisticationLevel.INTERMEDIATE: 2,
    SophisticationLevel.ADVANCED: 3,
    SophisticationLevel.EXPERT: 4,
})


@dataclass(frozen=True)
class ProtocolInfo:
    address: str
    name: str
    protocol_type: ProtocolType
    category: TransactionCategory
    sophistication: SophisticationLevel
    tags: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "name": self.name,
            "protocol_type": self.protocol_type.value,
            "category": self.category.value,
            "sophistication": self.sophistication.value,
            "tags": list(self.tags),
        }


def _protocol(
    address: str,
    name: str,
    protocol_type: ProtocolType,
    category: TransactionCategory,
    sophistication: SophisticationLevel,
    *tags: str,
) -> ProtocolInfo:
    return ProtocolInfo(address, name, protocol_type, category, sophistication, tuple(tags))


_P, _C, _S = ProtocolType, TransactionCategory, SophisticationLevel

_PROTOCOLS = (
    # DEX
    _protocol("0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D", "Uniswap V2 Router",
              _P.DEX, _C.DEFI_SWAP, _S.INTERMEDIATE, "dex", "amm", "swap", "uniswap"),
    _protocol("0xE592427A0AEce92De3Edee1F18E0157C05861564", "Uniswap V3 Router",
              _P.DEX, _C.DEFI_SWAP, _S.ADVANCED,
              "dex", "amm", "swap", "uniswap", "concentrated-liquidity"),
    _protocol("0x68b3465833fb72A70ecDF485E0e4C7bD8665Fc45", "Uniswap V3 Router 2",
              _P.DEX, _C.DEFI_SWAP, _S.ADVANCED,
              "dex", "amm", "swap", "uniswap", "concentrated-liquidity"),
    _protocol("0xd9e1cE17f2641f24aE83637ab66a2cca9C378B9F", "SushiSwap Router",
              _P.DEX, _C.DEFI_SWAP, _S.INTERMEDIATE, "dex", "amm", "swap", "sushiswap"),
    _protocol("0x1111111254fb6c44bAC0beD2854e76F90643097d", "1inch V4 Router",
              _P.DEX, _C.DEFI_SWAP, _S.EXPERT,
              "dex", "aggregator", "swap", "1inch", "mev-protection"),
    _protocol("0x1111111254EEB25477B68fb85Ed929f73A960582", "1inch V5 Router",
              _P.DEX, _C.DEFI_SWAP, _S.EXPERT,
              "dex", "aggregator", "swap", "1inch", "mev-protection"),
    _protocol("0xbEbc44782C7dB0a1A60Cb6fe97d0b483032FF1C7", "Curve 3Pool",
              _P.DEX, _C.DEFI_SWAP, _S.ADVANCED, "dex", "curve", "stableswap", "liquidity-pool"),
    _protocol("0x90E00ACe148ca3b23Ac1bC8C240C2a7Dd9c2d7f5", "Curve Registry",
              _P.DEX, _C.DEFI_LIQUIDITY, _S.EXPERT, "dex", "curve", "registry", "meta-pool"),
    # Lending
    _protocol("0x7d2768dE32b0b80b7a3454c06BdAc94A69DDc7A9", "Aave V2 Lending Pool",
              _P.LENDING, _C.DEFI_LENDING, _S.ADVANCED,
              "lending", "borrowing", "aave", "flash-loans"),
    _protocol("0x87870Bca3F3fD6335C3F4ce8392D69350B4fA4E2", "Aave V3 Pool",
              _P.LENDING, _C.DEFI_LENDING, _S.ADVANCED,
              "lending", "borrowing", "aave", "efficiency-mode"),
    _protocol("0x3d9819210A31b4961b30EF54bE2aeD79B9c9Cd3B", "Compound Comptroller",
              _P.LENDING, _C.DEFI_LENDING, _S.ADVANCED,
              "lending", "borrowing", "compound", "governance"),
    _protocol("0x4Ddc2D193948926D02f9B1fE9e1daa0718270ED5", "Compound cETH",
              _P.LENDING, _C.DEFI_LENDING, _S.INTERMEDIATE, "lending", "compound", "ctoken"),
    _protocol("0x5ef30b9986345249bc32d8928B7ee64DE9435E39", "MakerDAO CDP Manager",
              _P.LENDING, _C.DEFI_BORROWING, _S.EXPERT,
              "makerdao", "cdp", "dai", "collateral", "vault"),
    _protocol("0x6B175474E89094C44Da98b954EedeAC495271d0F", "DAI Token",
              _P.LENDING, _C.TRANSFER, _S.INTERMEDIATE, "stablecoin", "dai", "makerdao"),
    # Staking
    _protocol("0x00000000219ab540356cBB839Cbe05303d7705Fa", "ETH 2.0 Deposit Contract",
              _P.STAKING, _C.STAKING, _S.INTERMEDIATE,
              "staking", "eth2", "validator", "beacon-chain"),
    _protocol("0xae7ab96520DE3A18E5e111B5EaAb095312D7fE84", "Lido stETH",
              _P.STAKING, _C.STAKING, _S.INTERMEDIATE,
              "liquid-staking", "lido", "steth", "validator"),
    _protocol("0xae78736Cd615f374D3085123A210448E74Fc6393", "Rocket Pool rETH",
              _P.STAKING, _C.STAKING, _S.ADVANCED,
              "liquid-staking", "rocket-pool", "reth", "decentralized"),
    _protocol("0x9559Aaa82d9649C7A7b220E7c461d2E74c9a3593", "StaFi rETH",
              _P.STAKING, _C.STAKING, _S.ADVANCED, "liquid-staking", "stafi", "reth"),
    _protocol("0xA4C637e0F704745D182e4D38cAb7E7485321d059", "Ankr aETH",
              _P.STAKING, _C.STAKING, _S.INTERMEDIATE, "liquid-staking", "ankr", "aeth"),
    # Yield
    _protocol("0x50c1a2eA0a861A967D9d0FFE2AE4012c2E053804", "Yearn Registry",
              _P.YIELD_FARMING, _C.DEFI_LIQUIDITY, _S.EXPERT,
              "yield-farming", "yearn", "vault", "strategy"),
    # NFT
    _protocol("0x7Be8076f4EA4A4AD08075C2508e481d6C946D12b", "OpenSea",
              _P.NFT_MARKETPLACE, _C.NFT_TRADE, _S.BASIC, "nft", "marketplace", "opensea"),
    _protocol("0x7f268357A8c2552623316e2562D90e642bB538E5", "OpenSea Registry",
              _P.NFT_MARKETPLACE, _C.NFT_TRADE, _S.BASIC,
              "nft", "marketplace", "opensea", "registry"),
    # Bridges
    _protocol("0x88e6A0c2dDD26FEEb64F039a2c41296FcB3f5640", "Arbitrum Bridge",
              _P.BRIDGE, _C.BRIDGE, _S.INTERMEDIATE, "bridge", "arbitrum", "layer2"),
    _protocol("0x4Dbd4fc535Ac27206064B68FfCf827b0A60BAB3f", "Arbitrum Inbox",
              _P.BRIDGE, _C.BRIDGE, _S.INTERMEDIATE, "bridge", "arbitrum", "layer2", "inbox"),
    _protocol("0x8315177aB297bA92A06054cE80a67Ed4DBd7ed3a", "Arbitrum Bridge",
              _P.BRIDGE, _C.BRIDGE, _S.INTERMEDIATE, "bridge", "arbitrum", "layer2"),
    _protocol("0x99C9fc46f92E8a1c0deC1b1747d010903E884bE1", "Optimism Gateway",
              _P.BRIDGE, _C.BRIDGE, _S.INTERMEDIATE, "bridge", "optimism", "layer2"),
    _protocol("0x467194771dAe2967Aef3ECbEDD3Bf9a310C76C65", "Polygon Bridge",
              _P.BRIDGE, _C.BRIDGE, _S.INTERMEDIATE, "bridge", "polygon", "sidechain"),
)

# Read-only registry keyed by lowercase contract address.
PROTOCOL_REGISTRY: Mapping[str, ProtocolInfo] = MappingProxyType(
    {p.address.lower(): p for p in _PROTOCOLS}
)


@dataclass
class CategoryResult:
    primary: TransactionCategory
    subcategory: str
    confidence: float
    sophistication_level: SophisticationLevel
    tags: list[str] = field(default_factory=list)
    protocol_name: str | None = None
    protocol_type: ProtocolType | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary": self.primary.value,
            "subcategory": self.subcategory,
            "confidence": self.confidence,
            "protocol_name": self.protocol_name,
            "protocol_type": self.protocol_type.value if self.protocol_type else None,
            "sophistication_level": self.sophistication_level.value,
            "tags": list(self.tags),
        }


def lookup_protocol(address: str | None) -> ProtocolInfo | None:
    """Registry entry for a contract address (case-insensitive); None if unknown."""
    if not address:
        return None
    return PROTOCOL_REGISTRY.get(address.lower())


def search_protocols(query: str) -> list[ProtocolInfo]:
    """Protocols whose name or any tag contains the query (case-insensitive)."""
    needle = query.lower()
    return [
        p for p in PROTOCOL_REGISTRY.values()
        if needle in p.name.lower() or any(needle in tag for tag in p.tags)
    ]


def get_protocols_by_type(protocol_type: ProtocolType) -> list[ProtocolInfo]:
    return [p for p in PROTOCOL_REGISTRY.values() if p.protocol_type is protocol_type]


def categorize_transaction(tx: TransactionRecord) -> CategoryResult:
    """
    Categorize one transaction.

    Registry hit on the recipient wins (confidence 95); otherwise staking /
    DeFi flags, then the value / gas-used quadrant.
    """
    info = lookup_protocol(tx.to_address)
    if info is not None:
        return CategoryResult(
            primary=info.category,
            subcategory=info.name,
            confidence=95.0,
            sophistication_level=info.sophistication,
            tags=list(info.tags),
            protocol_name=info.name,
            protocol_type=info.protocol_type,
        )

    if tx.is_staking:
        return CategoryResult(
            primary=TransactionCategory.STAKING,
            subcategory=tx.protocol_name or "Unknown Staking Protocol",
            confidence=80.0,
            sophistication_level=SophisticationLevel.INTERMEDIATE,
            tags=["staking"],
        )
    if tx.is_defi:
        return CategoryResult(
            primary=TransactionCategory.DEFI_SWAP,
            subcategory=tx.protocol_name or "Unknown DeFi Protocol",
            confidence=75.0,
            sophistication_level=SophisticationLevel.INTERMEDIATE,
            tags=["defi"],
        )

    value = tx.amount
    gas = tx.gas_used_int
    if value == 0 and gas > TRANSFER_GAS:
        return CategoryResult(
            primary=TransactionCategory.CONTRACT_INTERACTION,
            subcategory="Contract Interaction",
            confidence=60.0,
            sophistication_level=(
                SophisticationLevel.ADVANCED
                if gas > ADVANCED_CONTRACT_GAS
                else SophisticationLevel.INTERMEDIATE
            ),
            tags=["contract"],
        )
    if value > 0 and gas <= TRANSFER_GAS:
        return CategoryResult(
            primary=TransactionCategory.TRANSFER,
            subcategory="Large Transfer" if value > 1 else "Standard Transfer",
            confidence=90.0,
            sophistication_level=SophisticationLevel.BASIC,
            tags=["transfer"],
        )
    if value > 0:
        return CategoryResult(
            primary=TransactionCategory.CONTRACT_INTERACTION,
            subcategory="Contract Interaction with Value",
            confidence=70.0,
            sophistication_level=SophisticationLevel.INTERMEDIATE,
            tags=["contract", "value-transfer"],
        )
    return CategoryResult(
        primary=TransactionCategory.UNKNOWN,
        subcategory="Unknown Transaction Type",
        confidence=20.0,
        sophistication_level=SophisticationLevel.BASIC,
        tags=["unknown"],
    )


def categorize_transactions(transactions: Sequence[TransactionRecord]) -> list[CategoryResult]:
    return [categorize_transaction(tx) for tx in transactions]


@dataclass
class CategoryStatistics:
    total_transactions: int
    category_breakdown: dict[TransactionCategory, int]
    protocol_type_breakdown: dict[ProtocolType, int]
    sophistication_breakdown: dict[SophisticationLevel, int]
    average_confidence: float
    top_protocols: list[tuple[str, int]]
    top_tags: list[tuple[str, int]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_transactions": self.total_transactions,
            "category_breakdown": {k.value: v for k, v in self.category_breakdown.items()},
            "protocol_type_breakdown": {
                k.value: v for k, v in self.protocol_type_breakdown.items()
            },
            "sophistication_breakdown": {
                k.value: v for k, v in self.sophistication_breakdown.items()
            },
            "average_confidence": self.average_confidence,
            "top_protocols": [{"name": n, "count": c} for n, c in self.top_protocols],
            "top_tags": [{"tag": t, "count": c} for t, c in self.top_tags],
        }


def get_category_statistics(transactions: Sequence[TransactionRecord]) -> CategoryStatistics:
    """Category / protocol-type / sophistication counts plus top 10 protocols and tags."""
    results = categorize_transactions(transactions)
    categories = {c: 0 for c in TransactionCategory}
    protocol_types = {p: 0 for p in ProtocolType}
    levels = {s: 0 for s in SophisticationLevel}
    protocols: Counter[str] = Counter()
    tags: Counter[str] = Counter()

    for r in results:
        categories[r.primary] += 1
        levels[r.sophistication_level] += 1
        if r.protocol_type is not None:
            protocol_types[r.protocol_type] += 1
        if r.protocol_name:
            protocols[r.protocol_name] += 1
        tags.update(r.tags)

    return CategoryStatistics(
        total_transactions=len(transactions),
        category_breakdown=categories,
        protocol_type_breakdown=protocol_types,
        sophistication_breakdown=levels,
        average_confidence=stats.mean(r.confidence for r in results),
        top_protocols=protocols.most_common(10),
        top_tags=tags.most_common(10),
    )


class SophisticationTrend(str, Enum):
    INCREASING = "INCREASING"
    DECREASING = "DECREASING"
    STABLE = "STABLE"


@dataclass
class TransactionPatterns:
    is_diversified: bool
    dominant_category: TransactionCategory
    dominant_protocol_type: ProtocolType | None
    sophistication_trend: SophisticationTrend
    risk_profile: str
    """LOW, MEDIUM or HIGH share of advanced/expert activity."""
    patterns: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_diversified": self.is_diversified,
            "dominant_category": self.dominant_category.value,
            "dominant_protocol_type": (
                self.dominant_protocol_type.value if self.dominant_protocol_type else None
            ),
            "sophistication_trend": self.sophistication_trend.value,
            "risk_profile": self.risk_profile,
            "patterns": list(self.patterns),
        }


def _dominant(counts: Mapping[Any, int], default: Any) -> Any:
    """Key with the strictly highest count; earlier keys win ties."""
    best, best_count = default, 0
    for key, count in counts.items():
        if count > best_count:
            best, best_count = key, count
    return best


def detect_transaction_patterns(transactions: Sequence[TransactionRecord]) -> TransactionPatterns:
    """
    Coarse behavior profile of a categorized history: diversification,
    dominant category, sophistication trend (last 10 vs first 10 by time),
    risk profile and labels such as "Heavy DEX trader".
    """
    n = len(transactions)
    summary = get_category_statistics(transactions)
    if n == 0:
        return TransactionPatterns(
            is_diversified=False,
            dominant_category=TransactionCategory.UNKNOWN,
            dominant_protocol_type=None,
            sophistication_trend=SophisticationTrend.STABLE,
            risk_profile="LOW",
            patterns=[],
        )

    is_diversified = sum(1 for c in summary.category_breakdown.values() if c > 0) >= 3
    ranks = [
        SOPHISTICATION_RANK[r.sophistication_level]
        for r in categorize_transactions(sort_by_time(transactions))
    ]
    window = min(10, n)
    recent = stats.mean(ranks[-window:])
    older = stats.mean(ranks[:window])
    if recent > older * 1.2:
        trend = SophisticationTrend.INCREASING
    elif recent < older * 0.8:
        trend = SophisticationTrend.DECREASING
    else:
        trend = SophisticationTrend.STABLE

    levels = summary.sophistication_breakdown
    expert_ratio = levels[SophisticationLevel.EXPERT] / n
    advanced_ratio = levels[SophisticationLevel.ADVANCED] / n
    if expert_ratio > 0.3 or advanced_ratio > 0.5:
        risk_profile = "HIGH"
    elif advanced_ratio > 0.2 or expert_ratio > 0.1:
        risk_profile = "MEDIUM"
    else:
        risk_profile = "LOW"

    types = summary.protocol_type_breakdown
    labels: list[str] = []
    if types[ProtocolType.DEX] > n * 0.5:
        labels.append("Heavy DEX trader")
    if types[ProtocolType.LENDING] > n * 0.3:
        labels.append("Active DeFi lender")
    if types[ProtocolType.STAKING] > n * 0.2:
        labels.append("Staking enthusiast")
    if levels[SophisticationLevel.EXPERT] > n * 0.2:
        labels.append("Advanced DeFi user")
    if is_diversified:
        labels.append("Diversified protocol user")

    return TransactionPatterns(
        is_diversified=is_diversified,
        dominant_category=_dominant(summary.category_breakdown, TransactionCategory.UNKNOWN),
        dominant_protocol_type=_dominant(types, None),
        sophistication_trend=trend,
        risk_profile=risk_profile,
        patterns=labels,
    )
