import time

import pytest
from PySide6.QtGui import QGuiApplication

from core.fanout import FanoutReport, Refresh
from core.scheduler import DEFAULT_REFRESH_INTERVAL_MINUTES, RefreshScheduler
from tests.conftest import spin_until


class CountingEngine:
    def __init__(self):
        self.events = []

    def apply(self, event):
        self.events.append(event)
        return FanoutReport()


@pytest.fixture
def engine():
    return CountingEngine()


def drain(seconds):
    deadline = time.monotonic() + seconds
    while time.monotonic() < deadline:
        QGuiApplication.processEvents()
        time.sleep(0.005)


def test_default_period_is_thirty_minutes(engine):
    scheduler = RefreshScheduler(engine)
    assert DEFAULT_REFRESH_INTERVAL_MINUTES == 30
    assert scheduler.interval_ms == 30 * 60 * 1000


def test_start_and_stop_are_idempotent(engine):
    scheduler = RefreshScheduler(engine, interval_ms=10_000)

    scheduler.start()
    scheduler.start()
    assert scheduler.is_running

    scheduler.stop()
    scheduler.stop()
    assert not scheduler.is_running
    assert engine.events == []


def test_timer_applies_refresh_periodically(engine):
    scheduler = RefreshScheduler(engine, interval_ms=20)
    reports = []
    scheduler.refreshed.connect(reports.append)

    scheduler.start()
    try:
        assert spin_until(lambda: len(engine.events) >= 2)
    finally:
        scheduler.stop()

    assert all(isinstance(event, Refresh) for event in engine.events)
    assert len(reports) >= 2


def test_no_refresh_after_stop(engine):
    scheduler = RefreshScheduler(engine, interval_ms=20)
    scheduler.start()
    assert spin_until(lambda: len(engine.events) >= 1)

    scheduler.stop()
    seen = len(engine.events)
    drain(0.15)

    assert len(engine.events) == seen


def test_request_refresh_runs_immediately_without_timer(engine):
    scheduler = RefreshScheduler(engine)

    report = scheduler.request_refresh()

    assert report == FanoutReport()
    assert engine.events == [Refresh()]
    assert not scheduler.is_running


def test_set_interval_changes_the_period(engine):
    scheduler = RefreshScheduler(engine)
    scheduler.set_interval(15 * 60 * 1000)
    assert scheduler.interval_ms == 15 * 60 * 1000
