"""
Engine logging: one structlog pipeline shared by every detector and the risk engine.

Each record carries event_type, level, an ISO 8601 UTC timestamp and the
emitting module, plus whatever keyword context the caller passes (address,
detector, risk_score, ...). LOG_LEVEL and LOG_FORMAT (json | console) pick
the defaults; configure_structlog() can override both, e.g. from a test.

This module must not import anything else from backend_txrisk: every other
module imports it.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

DEFAULT_LOGGER_NAME = "backend_txrisk"


def _resolve_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    name = (level or os.getenv("LOG_LEVEL", "INFO")).strip().upper()
    return getattr(logging, name, logging.INFO)


def _resolve_format(fmt: str | None) -> str:
    return (fmt or os.getenv("LOG_FORMAT", "json")).strip().lower()


def _utc_timestamp(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return event_dict


def _event_type(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """structlog's positional 'event' becomes event_type; message mirrors it."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    if "event_type" in event_dict:
        event_dict.setdefault("message", str(event_dict["event_type"]))
    return event_dict


def _renderer(fmt: str) -> Any:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_structlog(level: int | str | None = None, fmt: str | None = None) -> None:
    """
    (Re)build the structlog pipeline.

    Args:
        level: logging level number or name; LOG_LEVEL env (default INFO) if None.
        fmt: "json" or anything else for the console renderer; LOG_FORMAT env if None.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _utc_timestamp,
            _event_type,
            _renderer(_resolve_format(fmt)),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_resolve_level(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Return a structured logger for the given module name.

        logger = get_logger(__name__)
        logger.info("risk_assessment_complete", address=addr, risk_score=42)

    Output (JSON): {"event_type": "risk_assessment_complete", "address": "...",
    "risk_score": 42, "timestamp": "...", "level": "info", "logger": "module.name"}
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_address(address: str, name: str = DEFAULT_LOGGER_NAME) -> structlog.BoundLogger:
    """Return a logger with the analysed account address bound to all calls."""
    return get_logger(name).bind(address=address)
