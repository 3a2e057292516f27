"""Shared fixtures for the widget engine tests.

A single offscreen QGuiApplication backs every test so QImage, QPainter,
QSettings and QTimer behave as they do in the runtime. Logging goes to a
throwaway directory.
"""

from __future__ import annotations

import os
import tempfile
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Callable, List

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
os.environ.setdefault("PAIRLY_WIDGETS_HOME", tempfile.mkdtemp(prefix="pairly-widgets-tests-"))

import pytest
from PySide6.QtCore import QSettings
from PySide6.QtGui import QColor, QGuiApplication, QImage

from core.fanout import FanoutEngine
from core.instance_directory import InMemoryInstanceDirectory
from core.moment_store import MomentStore
from core.photo_resolver import PhotoResolver
from core.skins import SkinRegistry
from shared.moment import RenderedView

FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class RecordingPainter:
    """Painter that keeps every view it receives."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.views: List[RenderedView] = []

    def paint(self, view: RenderedView) -> None:
        with self._lock:
            self.views.append(view)

    @property
    def ids(self) -> List[int]:
        return [view.instance_id for view in self.views]

    def last_for(self, instance_id: int) -> RenderedView:
        return [view for view in self.views if view.instance_id == instance_id][-1]

    def reset(self) -> None:
        with self._lock:
            self.views.clear()


class FlakySettings(QSettings):
    """QSettings whose sync reports an access error while ``disk.failing`` is set."""

    disk = SimpleNamespace(failing=False)

    def status(self):
        if self.disk.failing:
            return QSettings.Status.AccessError
        return super().status()


@pytest.fixture(scope="session", autouse=True)
def qt_app():
    app = QGuiApplication.instance() or QGuiApplication([])
    yield app


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def painter() -> RecordingPainter:
    return RecordingPainter()


@pytest.fixture
def directory() -> InMemoryInstanceDirectory:
    return InMemoryInstanceDirectory()


@pytest.fixture
def store(tmp_path: Path) -> MomentStore:
    return MomentStore(tmp_path / "widgets.ini")


@pytest.fixture
def flaky_store(tmp_path: Path):
    """Return ``(store, disk)``; set ``disk.failing = True`` to break every write."""
    disk = SimpleNamespace(failing=False)

    def factory(*args):
        settings = FlakySettings(*args)
        settings.disk = disk
        return settings

    return MomentStore(tmp_path / "flaky.ini", settings_factory=factory), disk


@pytest.fixture
def resolver() -> PhotoResolver:
    return PhotoResolver()


@pytest.fixture
def engine(store, resolver, directory, painter):
    engine = FanoutEngine(
        store,
        resolver,
        SkinRegistry.default(),
        directory,
        painter,
        clock=lambda: FIXED_NOW,
    )
    yield engine
    engine.close()


@pytest.fixture
def photo_factory(tmp_path: Path) -> Callable[..., Path]:
    def _make(name: str = "photo.png", width: int = 64, height: int = 48, color: str = "red") -> Path:
        image = QImage(width, height, QImage.Format.Format_RGB32)
        image.fill(QColor(color))
        path = tmp_path / name
        assert image.save(str(path), "PNG")
        return path

    return _make


def spin_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Process Qt events until ``predicate`` holds or ``timeout`` seconds pass."""
    app = QGuiApplication.instance()
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        app.processEvents()
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()
