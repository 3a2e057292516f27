"""
Periodic refresh of every widget instance driven by a single Qt timer.
"""

from __future__ import annotations

import threading

from PySide6.QtCore import QObject, QTimer, Signal

from core.fanout import FanoutEngine, FanoutReport, Refresh
from widget_runtime import logger as app_logger

DEFAULT_REFRESH_INTERVAL_MINUTES = 30


class RefreshScheduler(QObject):
    """
    Fires ``apply(Refresh)`` on a fixed interval.

    Start and stop are idempotent. A tick and ``stop()`` share a lock, so once
    ``stop()`` returns no further pass will begin; a pass already running
    completes first. A restarted process begins a fresh full period.
    """

    refreshed = Signal(object)

    def __init__(
        self,
        engine: FanoutEngine,
        interval_ms: int = DEFAULT_REFRESH_INTERVAL_MINUTES * 60 * 1000,
    ) -> None:
        super().__init__()
        self._engine = engine
        self._logger = app_logger.get_logger()
        self._lock = threading.RLock()
        self._active = False
        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self._on_timeout)  # type: ignore[arg-type]

    @property
    def is_running(self) -> bool:
        return self._active

    @property
    def interval_ms(self) -> int:
        return self._timer.interval()

    def set_interval(self, interval_ms: int) -> None:
        if self._timer.interval() != interval_ms:
            self._timer.setInterval(interval_ms)

    def start(self) -> None:
        """Begin periodic refreshes."""
        with self._lock:
            if self._active:
                return
            self._active = True
            self._timer.start()
            self._logger.info("Refresh scheduler started ({} ms period).", self._timer.interval())

    def stop(self) -> None:
        """Cancel future ticks."""
        with self._lock:
            if not self._active:
                return
            self._timer.stop()
            self._active = False
            self._logger.info("Refresh scheduler stopped.")

    def request_refresh(self) -> FanoutReport:
        """Run a refresh pass now, independent of the timer."""
        with self._lock:
            return self._run_refresh()

    def _on_timeout(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._run_refresh()

    def _run_refresh(self) -> FanoutReport:
        report = self._engine.apply(Refresh())
        self._logger.debug("Scheduled refresh painted {} instance(s).", len(report.views))
        self.refreshed.emit(report)
        return report
