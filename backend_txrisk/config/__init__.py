"""
Configuration for the TxRisk engine.

Threshold tables are immutable dataclasses composed into EngineSettings and
passed explicitly down the call chain. Runtime knobs come from environment
variables (optionally via .env).
"""

from backend_txrisk.config.settings import (
    AnalyzerConfig,
    BotBehaviorConfig,
    CoordinationConfig,
    EngineSettings,
    RiskConfig,
    StatisticalConfig,
    WashTradingConfig,
    get_settings,
)

__all__ = [
    "AnalyzerConfig",
    "BotBehaviorConfig",
    "CoordinationConfig",
    "EngineSettings",
    "RiskConfig",
    "StatisticalConfig",
    "WashTradingConfig",
    "get_settings",
]
