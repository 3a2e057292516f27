"""
Host-facing coordinator wiring the store, renderer, fan-out engine and scheduler.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from core.fanout import (
    Clear,
    FanoutEngine,
    FanoutReport,
    NewMoment,
    Painter,
    PlaceInstance,
    RemoveInstance,
    ResizeInstance,
    ToggleInstance,
    utcnow,
)
from core.instance_directory import InstanceDirectory
from core.moment_store import MomentStore
from core.photo_resolver import PhotoResolver
from core.scheduler import RefreshScheduler
from core.settings import WidgetSettings, WidgetSettingsManager
from core.skins import SkinRegistry, UnknownSkinError
from shared.moment import (
    Moment,
    MomentValidationError,
    coerce_timestamp,
    parse_size_class,
    parse_skin_type,
)
from widget_runtime import logger as app_logger

APP_NAME = "Pairly Widgets"
APP_VERSION = "1.0.0"
STORE_FILENAME = "widgets.ini"
SETTINGS_FILENAME = "settings.ini"
DEFAULT_DATA_DIR = app_logger.DATA_DIR


@dataclass
class WidgetCoordinator:
    """
    Entry point for host callbacks.

    The host reports moments, instance lifecycle and taps through the ``on_*``
    methods and receives RenderedViews through its painter.
    """

    directory: InstanceDirectory
    painter: Painter
    data_dir: Path = field(default_factory=lambda: DEFAULT_DATA_DIR)
    settings_manager: Optional[WidgetSettingsManager] = None
    clock: Callable[[], datetime] = utcnow

    def __post_init__(self) -> None:
        self._logger = app_logger.get_logger()
        self.data_dir = Path(self.data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        if self.settings_manager is None:
            self.settings_manager = WidgetSettingsManager(self.data_dir / SETTINGS_FILENAME)

        self.settings: WidgetSettings = self.settings_manager.read_settings()
        # Unknown skins in the configuration fail here, not during a render.
        self.registry = SkinRegistry.default().restricted(self.settings.enabled_skins)
        self.store = MomentStore(self.data_dir / STORE_FILENAME)
        self.resolver = PhotoResolver(self.settings.max_photo_dimension)
        self.engine = FanoutEngine(
            self.store,
            self.resolver,
            self.registry,
            self.directory,
            self.painter,
            max_dim=self.settings.max_photo_dimension,
            workers=self.settings.render_workers,
            clock=self.clock,
        )
        self.scheduler = RefreshScheduler(self.engine, self.settings.refresh_interval_ms)

    def start(self) -> None:
        self._logger.info(
            "Starting widget coordinator ({} skins). Data in {}",
            len(self.registry.skin_types()),
            self.data_dir,
        )
        self.scheduler.request_refresh()
        self.scheduler.start()

    def shutdown(self) -> None:
        self._logger.info("Shutting down widget coordinator.")
        self.scheduler.stop()
        self.engine.close()

    def on_new_moment(
        self,
        photo_ref: Optional[str],
        partner_name: Optional[str],
        note: Optional[str] = None,
        timestamp: Any = None,
        *,
        self_photo_ref: Optional[str] = None,
        expires_at: Any = None,
        moment_id: Optional[str] = None,
    ) -> FanoutReport:
        moment = Moment(
            photo_ref=photo_ref,
            partner_name=partner_name,
            note=note,
            captured_at=coerce_timestamp(timestamp),
            self_photo_ref=self_photo_ref,
            expires_at=coerce_timestamp(expires_at),
            moment_id=moment_id,
        )
        self._logger.info("New moment received (photo={}, partner={!r})", photo_ref, partner_name)
        return self.engine.apply(NewMoment(moment))

    def on_clear(self) -> FanoutReport:
        self._logger.info("Clearing moment on host request.")
        return self.engine.apply(Clear())

    def on_instance_created(self, instance_id: int, skin_type: Any, size_class: Any = "medium") -> FanoutReport:
        try:
            skin = parse_skin_type(skin_type)
        except MomentValidationError as exc:
            raise UnknownSkinError(str(exc)) from exc
        if skin not in self.registry.skin_types():
            raise UnknownSkinError(f"Skin {skin.value!r} is not enabled")
        self._logger.info("Instance {} placed with skin {}", instance_id, skin.value)
        return self.engine.apply(PlaceInstance(instance_id, skin, parse_size_class(size_class)))

    def on_instance_deleted(self, instance_id: int) -> FanoutReport:
        return self.engine.apply(RemoveInstance(instance_id))

    def on_instance_resized(self, instance_id: int, size_class: Any) -> FanoutReport:
        return self.engine.apply(ResizeInstance(instance_id, parse_size_class(size_class)))

    def on_toggle_instance(self, instance_id: int) -> FanoutReport:
        self._logger.debug("Toggle requested for instance {}", instance_id)
        return self.engine.apply(ToggleInstance(instance_id))

    def on_tick(self) -> FanoutReport:
        return self.scheduler.request_refresh()

    def has_instances(self) -> bool:
        return self.engine.has_instances()
