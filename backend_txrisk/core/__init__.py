"""
Core utilities: domain exceptions shared by the analysis engine and analytics.
"""

from backend_txrisk.core.exceptions import (
    DetectorError,
    InvalidProfileError,
    InvalidTransactionError,
    TxRiskError,
)

__all__ = [
    "DetectorError",
    "InvalidProfileError",
    "InvalidTransactionError",
    "TxRiskError",
]
