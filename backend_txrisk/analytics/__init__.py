"""
TxRisk analytics: categorization, per-transaction analysis, risk assessment.

Modules: categorizer, transaction_analyzer, risk_engine.
"""

from backend_txrisk.analytics.categorizer import (
    categorize_transaction,
    detect_transaction_patterns,
    get_category_statistics,
    search_protocols,
)
from backend_txrisk.analytics.transaction_analyzer import (
    analyze_temporal_patterns,
    analyze_transaction,
    gas_efficiency,
    generate_efficiency_recommendations,
)
from backend_txrisk.analytics.risk_engine import assess_risk, risk_level_for_score

__all__ = [
    "analyze_temporal_patterns",
    "analyze_transaction",
    "assess_risk",
    "categorize_transaction",
    "detect_transaction_patterns",
    "gas_efficiency",
    "generate_efficiency_recommendations",
    "get_category_statistics",
    "risk_level_for_score",
    "search_protocols",
]
