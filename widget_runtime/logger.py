"""
Logging setup for the widget runtime.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

from loguru import logger as _logger

_LOG_INITIALISED = False
DATA_DIR = Path(
    os.environ.get(
        "PAIRLY_WIDGETS_HOME",
        str(Path.home() / ".local" / "share" / "pairly-widgets"),
    )
)
LOG_DIR = DATA_DIR / "logs"
DEFAULT_LOG_PATH = LOG_DIR / "widgets.log"


def configure(log_path: Optional[Path] = None) -> None:
    """
    Route widget engine logs to stderr and to ``widgets.log``.

    The file lives under ``$PAIRLY_WIDGETS_HOME/logs`` (default
    ``~/.local/share/pairly-widgets/logs``) and keeps DEBUG detail such as
    per-instance render failures and purged records; stderr only shows INFO
    and above. Render workers log from their own threads, so both sinks are
    queued. Only the first call in a process takes effect.
    """
    global _LOG_INITIALISED
    if _LOG_INITIALISED:
        return
    target = log_path or DEFAULT_LOG_PATH
    target.parent.mkdir(parents=True, exist_ok=True)

    # Keep console output and add a persistent file sink.
    _logger.remove()
    if sys.stderr is not None:
        _logger.add(sys.stderr, level="INFO", enqueue=True)
    _logger.add(
        target,
        level="DEBUG",
        rotation="10 MB",
        retention=5,
        encoding="utf-8",
        enqueue=True,
        backtrace=True,
        diagnose=False,
    )
    _LOG_INITIALISED = True


def get_logger():
    """Return the shared logger instance."""
    configure()
    return _logger
