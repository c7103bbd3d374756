"""
Test that txrisk_logging can be imported without circular import and logger works.
"""

from __future__ import annotations


def test_logging_import():
    """Import get_logger from txrisk_logging and use the logger."""
    from backend_txrisk.txrisk_logging import get_logger

    logger = get_logger("test")
    assert logger is not None
    assert hasattr(logger, "info")
    assert hasattr(logger, "debug")
    assert hasattr(logger, "warning")
    assert hasattr(logger, "error")
    # Smoke test: call info (should not raise)
    logger.info("test_message", key="value")


def test_bind_address_logger():
    """bind_address returns a logger carrying the address; logging through it does not raise."""
    from backend_txrisk.txrisk_logging import bind_address

    log = bind_address("0xabc", "tests")
    log.info("address_bound", risk_score=10)
    log.debug("address_debug")


def test_configure_structlog_console_and_level(capfd):
    """Console rendering with a WARNING floor drops info and prints warnings."""
    import structlog

    from backend_txrisk.txrisk_logging import configure_structlog, get_logger

    try:
        configure_structlog(level="WARNING", fmt="console")
        log = get_logger("tests.console")
        log.info("hidden_event")
        log.warning("shown_event", detector="bot_behavior")
        out = capfd.readouterr().out
        assert "shown_event" in out
        assert "hidden_event" not in out
    finally:
        structlog.reset_defaults()
        configure_structlog()
