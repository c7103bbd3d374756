"""
Custom exceptions for the TxRisk engine.

Input records are validated at the boundary (from_dict); once inside the
engine, degenerate statistics and short histories are result states, not
errors. DetectorError wraps a failure inside one anomaly detector so the
orchestrator can isolate it.
"""

from __future__ import annotations


class TxRiskError(Exception):
    """Base class for all TxRisk errors."""


class InvalidTransactionError(TxRiskError, ValueError):
    """A transaction record is missing required fields or has unparseable values."""


class InvalidProfileError(TxRiskError, ValueError):
    """An account profile is missing required fields or has unparseable values."""


class DetectorError(TxRiskError):
    """An anomaly detector raised while analysing a transaction history."""

    def __init__(self, detector: str, message: str) -> None:
        super().__init__(f"{detector}: {message}")
        self.detector = detector
