"""
Structured logging for TxRisk (structlog).

Import get_logger from here in every module:
    from backend_txrisk.txrisk_logging import get_logger
"""

from backend_txrisk.txrisk_logging.logger import (
    bind_address,
    configure_structlog,
    get_logger,
)

__all__ = ["bind_address", "configure_structlog", "get_logger"]
