"""
Entry point for the headless widget runtime.
"""

from __future__ import annotations

import os
import sys
import time
from typing import Iterable, Tuple

from PySide6.QtCore import QLockFile
from PySide6.QtGui import QGuiApplication

from core.app import APP_NAME, APP_VERSION, WidgetCoordinator
from core.instance_directory import InMemoryInstanceDirectory
from shared.moment import RenderedView
from widget_runtime import logger as app_logger

_LOGGER = app_logger.get_logger()
_LOCK_NAME = "widgets.lock"


class LoggingPainter:
    """Painter used when no host surface is attached: records each view in the log."""

    def paint(self, view: RenderedView) -> None:
        visible = "image" if view.get("image_visible") else "placeholder"
        _LOGGER.info(
            "Instance {} ({}) -> {} | {}",
            view.instance_id,
            view.skin_type.value,
            visible,
            view.get("partner_name", "-"),
        )


def _run_application_once(argv: Iterable[str]) -> Tuple[int, bool]:
    """Start the Qt application once and report whether shutdown was intentional."""
    app = QGuiApplication.instance() or QGuiApplication(list(argv))
    app.setApplicationName(APP_NAME)
    app.setApplicationVersion(APP_VERSION)
    directory = InMemoryInstanceDirectory()
    coordinator = WidgetCoordinator(directory=directory, painter=LoggingPainter())

    # Instances recorded by a previous run are still placed on the host.
    for instance_id in coordinator.store.instance_ids():
        directory.add(instance_id, coordinator.store.get_instance_state(instance_id).skin_type)

    app.aboutToQuit.connect(coordinator.shutdown)
    coordinator.start()
    exit_code = app.exec()
    return exit_code, exit_code == 0


def main() -> int:
    """Launch the runtime with single-instance + recovery safeguards."""
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    app_logger.DATA_DIR.mkdir(parents=True, exist_ok=True)
    guard = QLockFile(str(app_logger.DATA_DIR / _LOCK_NAME))
    if not guard.tryLock(100):
        _LOGGER.debug("Widget runtime already running; exiting silently.")
        return 0

    backoff_seconds = 2
    max_backoff = 30

    try:
        while True:
            try:
                exit_code, clean = _run_application_once(sys.argv)
            except Exception:  # pragma: no cover - crash guard for the restart loop
                _LOGGER.exception("Widget runtime crashed; attempting automatic recovery.")
                exit_code = 1
                clean = False

            if clean:
                return exit_code

            _LOGGER.warning(
                "Widget runtime exited unexpectedly (code={}). Restarting in {} seconds.",
                exit_code,
                backoff_seconds,
            )
            time.sleep(backoff_seconds)
            backoff_seconds = min(backoff_seconds * 2, max_backoff)
    finally:
        guard.unlock()


if __name__ == "__main__":
    raise SystemExit(main())
