"""
INI-backed configuration for the widget runtime.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from PySide6.QtCore import QSettings

from core.fanout import DEFAULT_RENDER_WORKERS
from core.photo_resolver import DEFAULT_MAX_DIMENSION
from core.scheduler import DEFAULT_REFRESH_INTERVAL_MINUTES
from shared.moment import SkinType
from widget_runtime import logger as app_logger

_LOGGER = app_logger.get_logger()

_GROUP = "Widgets"
_MIN_REFRESH_MINUTES = 15
_MAX_REFRESH_MINUTES = 1440
_MIN_PHOTO_DIMENSION = 64
_MAX_PHOTO_DIMENSION = 2048
_MIN_WORKERS = 1
_MAX_WORKERS = 16


@dataclass(eq=True)
class WidgetSettings:
    refresh_interval_minutes: int = DEFAULT_REFRESH_INTERVAL_MINUTES
    max_photo_dimension: int = DEFAULT_MAX_DIMENSION
    render_workers: int = DEFAULT_RENDER_WORKERS
    enabled_skins: Tuple[str, ...] = field(
        default_factory=lambda: tuple(skin.value for skin in SkinType)
    )

    @property
    def refresh_interval_ms(self) -> int:
        return self.refresh_interval_minutes * 60 * 1000


class WidgetSettingsManager:
    """Loads persisted settings from an INI file and clamps invalid data."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else None

    def read_settings(self) -> WidgetSettings:
        if self.path is None or not self.path.exists():
            return WidgetSettings()

        settings = QSettings(str(self.path), QSettings.Format.IniFormat)
        settings.beginGroup(_GROUP)
        try:
            return WidgetSettings(
                refresh_interval_minutes=self._read_clamped(
                    settings,
                    "RefreshIntervalMinutes",
                    DEFAULT_REFRESH_INTERVAL_MINUTES,
                    _MIN_REFRESH_MINUTES,
                    _MAX_REFRESH_MINUTES,
                ),
                max_photo_dimension=self._read_clamped(
                    settings,
                    "MaxPhotoDimension",
                    DEFAULT_MAX_DIMENSION,
                    _MIN_PHOTO_DIMENSION,
                    _MAX_PHOTO_DIMENSION,
                ),
                render_workers=self._read_clamped(
                    settings,
                    "RenderWorkers",
                    DEFAULT_RENDER_WORKERS,
                    _MIN_WORKERS,
                    _MAX_WORKERS,
                ),
                enabled_skins=self._read_skins(settings),
            )
        finally:
            settings.endGroup()

    def _read_clamped(self, settings: QSettings, name: str, default: int, low: int, high: int) -> int:
        raw = self._read_int(settings, name)
        if raw is None:
            return default
        if raw < low or raw > high:
            _LOGGER.warning(
                "Invalid {} value {} found in {}. Clamping to safe bounds.",
                name,
                raw,
                self.path,
            )
        return max(low, min(high, raw))

    def _read_int(self, settings: QSettings, name: str) -> Optional[int]:
        value = settings.value(name)
        if value is None or value == "":
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            _LOGGER.warning("Setting {} has non-integer value {!r}; using default.", name, value)
            return None

    def _read_skins(self, settings: QSettings) -> Tuple[str, ...]:
        value = settings.value("EnabledSkins")
        if value is None or value == "":
            return WidgetSettings().enabled_skins
        # A comma separated INI value comes back as a list.
        if isinstance(value, str):
            value = value.split(",")
        return tuple(str(skin).strip().lower() for skin in value if str(skin).strip())
