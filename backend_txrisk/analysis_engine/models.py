"""
Input records and shared enums for the TxRisk engine.

TransactionRecord and UserProfile are read-only snapshots handed to the
engine by the ingestion layer. Numeric fields arrive as decimal strings
(ETH for value, Gwei for gas price) and are parsed on access; malformed
numbers are a data-source defect and surface as ValueError from float().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from backend_txrisk.core.exceptions import InvalidProfileError, InvalidTransactionError


class RiskLevel(str, Enum):
    """Shared severity / suspicion / risk band."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


_LEVEL_ORDER = (RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL)


def level_rank(level: RiskLevel) -> int:
    """Ordinal of a level (LOW=0 .. CRITICAL=3) for comparisons."""
    return _LEVEL_ORDER.index(level)


def _number(raw: Any) -> float:
    if raw is None or raw == "":
        return 0.0
    return float(raw)


def _first(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class TransactionRecord:
    """
    One on-chain transaction of the analysed address.

    Immutable; the engine never writes to it. Order in a list carries no
    meaning: components sort by timestamp where order matters.
    """

    hash: str
    timestamp: int
    """Unix seconds."""
    value: str = "0"
    """Decimal string, ETH."""
    gas_price: str = "0"
    """Decimal string, Gwei."""
    gas_used: str = "0"
    from_address: str = ""
    to_address: str | None = None
    block_number: int = 0
    protocol_name: str | None = None
    is_defi: bool = False
    is_staking: bool = False

    @property
    def amount(self) -> float:
        """Transferred value in ETH."""
        return _number(self.value)

    @property
    def gas_price_gwei(self) -> float:
        return _number(self.gas_price)

    @property
    def gas_used_int(self) -> int:
        return int(_number(self.gas_used))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TransactionRecord:
        """
        Build a record from an ingestion payload (camelCase or snake_case keys).

        Raises InvalidTransactionError when hash or timestamp is missing or the
        timestamp is not an integer.
        """
        tx_hash = _first(data, "hash")
        raw_ts = _first(data, "timestamp")
        if not tx_hash:
            raise InvalidTransactionError("transaction is missing 'hash'")
        if raw_ts is None:
            raise InvalidTransactionError(f"transaction {tx_hash} is missing 'timestamp'")
        try:
            timestamp = int(raw_ts)
        except (TypeError, ValueError) as e:
            raise InvalidTransactionError(
                f"transaction {tx_hash} has invalid timestamp {raw_ts!r}"
            ) from e
        return cls(
            hash=str(tx_hash),
            timestamp=timestamp,
            value=str(_first(data, "value", default="0")),
            gas_price=str(_first(data, "gasPrice", "gas_price", default="0")),
            gas_used=str(_first(data, "gasUsed", "gas_used", default="0")),
            from_address=str(_first(data, "from", "from_address", default="")),
            to_address=_first(data, "to", "to_address"),
            block_number=int(_first(data, "blockNumber", "block_number", default=0)),
            protocol_name=_first(data, "protocolName", "protocol_name"),
            is_defi=bool(_first(data, "isDeFi", "is_defi", default=False)),
            is_staking=bool(_first(data, "isStaking", "is_staking", default=False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "timestamp": self.timestamp,
            "value": self.value,
            "gas_price": self.gas_price,
            "gas_used": self.gas_used,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "block_number": self.block_number,
            "protocol_name": self.protocol_name,
            "is_defi": self.is_defi,
            "is_staking": self.is_staking,
        }


@dataclass(frozen=True)
class UserProfile:
    """
    Aggregated metrics for one address, refreshed by the ingestion layer.

    Volumes are decimal strings in ETH.
    """

    account_age_days: int
    total_transactions: int
    total_volume: str = "0"
    avg_transaction_value: str = "0"
    last_transaction_date: int = 0
    """Unix seconds of the most recent transaction."""
    staking_balance: str = "0"
    defi_protocols_used: tuple[str, ...] = field(default_factory=tuple)
    first_transaction_date: int | None = None

    @property
    def total_volume_eth(self) -> float:
        return _number(self.total_volume)

    @property
    def avg_transaction_value_eth(self) -> float:
        return _number(self.avg_transaction_value)

    @property
    def staking_balance_eth(self) -> float:
        return _number(self.staking_balance)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UserProfile:
        """Build a profile from a metrics payload; raises InvalidProfileError on bad input."""
        age = _first(data, "accountAge", "account_age_days")
        total = _first(data, "totalTransactions", "total_transactions")
        if age is None or total is None:
            raise InvalidProfileError("profile requires account age and total transactions")
        try:
            protocols: Iterable[str] = _first(
                data, "defiProtocolsUsed", "defi_protocols_used", default=()
            )
            first_ts = _first(data, "firstTransactionDate", "first_transaction_date")
            return cls(
                account_age_days=int(age),
                total_transactions=int(total),
                total_volume=str(_first(data, "totalVolume", "total_volume", default="0")),
                avg_transaction_value=str(
                    _first(data, "avgTransactionValue", "avg_transaction_value", default="0")
                ),
                last_transaction_date=int(
                    _first(data, "lastTransactionDate", "last_transaction_date", default=0)
                ),
                staking_balance=str(
                    _first(data, "stakingBalance", "staking_balance", default="0")
                ),
                defi_protocols_used=tuple(str(p) for p in protocols),
                first_transaction_date=int(first_ts) if first_ts is not None else None,
            )
        except (TypeError, ValueError) as e:
            raise InvalidProfileError(f"invalid profile field: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_age_days": self.account_age_days,
            "total_transactions": self.total_transactions,
            "total_volume": self.total_volume,
            "avg_transaction_value": self.avg_transaction_value,
            "last_transaction_date": self.last_transaction_date,
            "staking_balance": self.staking_balance,
            "defi_protocols_used": list(self.defi_protocols_used),
            "first_transaction_date": self.first_transaction_date,
        }


def sort_by_time(transactions: Iterable[TransactionRecord]) -> list[TransactionRecord]:
    """Stable sort by timestamp; equal timestamps keep input order."""
    return sorted(transactions, key=lambda t: t.timestamp)
