"""
Environment variable loading for TxRisk.

- LOG_LEVEL / LOG_FORMAT: read by txrisk_logging at import.
- TXRISK_PARALLEL_DETECTORS: run the four anomaly detectors concurrently (default: true).
- TXRISK_DETECTOR_WORKERS: thread pool size for concurrent detectors (default: 4).
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is backend_txrisk/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_DETECTOR_WORKERS = 4

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def load_txrisk_env() -> None:
    """Load .env from project root. Safe to call multiple times; existing env wins."""
    load_dotenv(_ENV_PATH, override=False)


def get_parallel_detectors() -> bool:
    """
    Return TXRISK_PARALLEL_DETECTORS from env.
    Default: True. Unrecognised values fall back to the default.
    """
    load_txrisk_env()
    raw = (os.getenv("TXRISK_PARALLEL_DETECTORS") or "").strip().lower()
    if raw in _FALSE_VALUES:
        return False
    if raw in _TRUE_VALUES:
        return True
    return True


def get_detector_workers() -> int:
    """
    Return TXRISK_DETECTOR_WORKERS from env, clamped to >= 1.
    Default: 4.
    """
    load_txrisk_env()
    raw = (os.getenv("TXRISK_DETECTOR_WORKERS") or "").strip()
    if not raw:
        return DEFAULT_DETECTOR_WORKERS
    try:
        return max(1, int(raw))
    except ValueError:
        return DEFAULT_DETECTOR_WORKERS
