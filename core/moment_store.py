"""
Persistence layer for the shared moment and per-instance widget state.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List

from PySide6.QtCore import QSettings

from shared.moment import EMPTY_MOMENT, InstanceState, Moment, MomentValidationError
from widget_runtime import logger as app_logger

_MOMENT_GROUP = "moment"
_INSTANCES_GROUP = "instances"
_RECORD_KEY = "record"
_STATE_KEY = "state"


class StorageUnavailable(OSError):
    """Raised when the backing file cannot be written; nothing was persisted."""


class MomentStore:
    """
    INI-backed store for the live moment and the per-instance records.

    Writes are serialised and synced to disk before returning. Reads are served
    from an immutable in-memory snapshot that only changes after a successful
    sync, so a failed write is never visible.
    """

    def __init__(self, path: Path, *, settings_factory=QSettings) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._logger = app_logger.get_logger()
        self._settings_factory = settings_factory
        self._settings = self._open_settings()
        self._write_lock = threading.Lock()
        self._moment: Moment = EMPTY_MOMENT
        self._instances: Dict[int, InstanceState] = {}
        self._load()

    def get_moment(self) -> Moment:
        return self._moment

    def set_moment(self, moment: Moment) -> None:
        with self._write_lock:
            self._write_moment(self._settings, moment)
            self._commit()
            self._moment = moment

    def clear(self) -> None:
        """Reset the moment to the empty sentinel. Instance state is kept."""
        self.set_moment(EMPTY_MOMENT)

    def get_instance_state(self, instance_id: int) -> InstanceState:
        return self._instances.get(instance_id) or InstanceState()

    def has_instance_state(self, instance_id: int) -> bool:
        return instance_id in self._instances

    def instance_ids(self) -> List[int]:
        return sorted(self._instances)

    def set_instance_state(self, instance_id: int, state: InstanceState) -> None:
        with self._write_lock:
            self._write_instance(self._settings, instance_id, state)
            self._commit()
            instances = dict(self._instances)
            instances[instance_id] = state
            self._instances = instances

    def delete_instance_state(self, instance_id: int) -> None:
        with self._write_lock:
            if instance_id not in self._instances and not self._has_group(instance_id):
                return
            self._settings.remove(_instance_group(instance_id))
            self._commit()
            instances = dict(self._instances)
            instances.pop(instance_id, None)
            self._instances = instances

    def _load(self) -> None:
        record = self._settings.value(f"{_MOMENT_GROUP}/{_RECORD_KEY}")
        if record:
            try:
                self._moment = Moment.from_record(str(record))
            except MomentValidationError as exc:
                self._logger.warning("Discarding unreadable moment record in {}: {}", self.path, exc)

        with self._group(_INSTANCES_GROUP):
            groups = list(self._settings.childGroups())

        instances: Dict[int, InstanceState] = {}
        for name in groups:
            try:
                instance_id = int(name)
            except ValueError:
                self._logger.warning("Ignoring instance group with non-numeric id {!r}", name)
                continue
            raw = self._settings.value(f"{_instance_group(instance_id)}/{_STATE_KEY}")
            if not raw:
                continue
            try:
                instances[instance_id] = InstanceState.from_record(str(raw))
            except MomentValidationError as exc:
                self._logger.warning("Discarding unreadable state for instance {}: {}", instance_id, exc)
        self._instances = instances
        self._logger.debug(
            "Loaded moment store {} ({} instance records)", self.path, len(self._instances)
        )

    def _open_settings(self) -> QSettings:
        return self._settings_factory(str(self.path), QSettings.Format.IniFormat)

    @staticmethod
    def _write_moment(settings: QSettings, moment: Moment) -> None:
        settings.setValue(f"{_MOMENT_GROUP}/{_RECORD_KEY}", moment.to_record())

    @staticmethod
    def _write_instance(settings: QSettings, instance_id: int, state: InstanceState) -> None:
        settings.setValue(f"{_instance_group(instance_id)}/{_STATE_KEY}", state.to_record())

    def _write_snapshot(self, settings: QSettings) -> None:
        settings.clear()
        self._write_moment(settings, self._moment)
        for instance_id, state in self._instances.items():
            self._write_instance(settings, instance_id, state)

    def _has_group(self, instance_id: int) -> bool:
        with self._group(_INSTANCES_GROUP):
            return str(instance_id) in self._settings.childGroups()

    def _commit(self) -> None:
        self._settings.sync()
        status = self._settings.status()
        if status == QSettings.Status.NoError:
            return
        self._recover()
        raise StorageUnavailable(f"Unable to persist widget state to {self.path} ({status.name})")

    def _recover(self) -> None:
        """
        Replace the settings object after a failed sync.

        QSettings keeps its error status for the lifetime of the object. Both
        the discarded object and its replacement hold the last committed
        snapshot, never the rejected change.
        """
        self._write_snapshot(self._settings)
        self._settings = self._open_settings()
        self._write_snapshot(self._settings)
        self._logger.warning("Reopened moment store {} after a failed write.", self.path)

    @contextmanager
    def _group(self, name: str) -> Iterator[None]:
        self._settings.beginGroup(name)
        try:
            yield
        finally:
            self._settings.endGroup()


def _instance_group(instance_id: int) -> str:
    return f"{_INSTANCES_GROUP}/{instance_id}"
