from PySide6.QtCore import QSettings

from core.settings import WidgetSettings, WidgetSettingsManager
from shared.moment import SkinType


def write_settings(path, **values):
    settings = QSettings(str(path), QSettings.Format.IniFormat)
    settings.beginGroup("Widgets")
    for key, value in values.items():
        settings.setValue(key, value)
    settings.endGroup()
    settings.sync()


def test_missing_file_yields_defaults(tmp_path):
    settings = WidgetSettingsManager(tmp_path / "settings.ini").read_settings()
    assert settings == WidgetSettings()
    assert settings.refresh_interval_ms == 30 * 60 * 1000
    assert settings.max_photo_dimension == 512
    assert set(settings.enabled_skins) == {skin.value for skin in SkinType}
    assert WidgetSettingsManager().read_settings() == WidgetSettings()


def test_values_in_range_are_used(tmp_path):
    path = tmp_path / "settings.ini"
    write_settings(path, RefreshIntervalMinutes=60, MaxPhotoDimension=1024, RenderWorkers=2)

    settings = WidgetSettingsManager(path).read_settings()

    assert settings.refresh_interval_minutes == 60
    assert settings.max_photo_dimension == 1024
    assert settings.render_workers == 2


def test_out_of_range_values_are_clamped(tmp_path):
    path = tmp_path / "settings.ini"
    write_settings(path, RefreshIntervalMinutes=1, MaxPhotoDimension=100000, RenderWorkers=0)

    settings = WidgetSettingsManager(path).read_settings()

    assert settings.refresh_interval_minutes == 15
    assert settings.max_photo_dimension == 2048
    assert settings.render_workers == 1


def test_non_integer_values_fall_back_to_defaults(tmp_path):
    path = tmp_path / "settings.ini"
    write_settings(path, RefreshIntervalMinutes="soon", MaxPhotoDimension="")

    settings = WidgetSettingsManager(path).read_settings()

    assert settings.refresh_interval_minutes == 30
    assert settings.max_photo_dimension == 512


def test_enabled_skins_accepts_comma_separated_list(tmp_path):
    path = tmp_path / "settings.ini"
    path.write_text("[Widgets]\nEnabledSkins=Classic, heart,flip_card\n", encoding="utf-8")

    settings = WidgetSettingsManager(path).read_settings()

    assert settings.enabled_skins == ("classic", "heart", "flip_card")


def test_single_enabled_skin(tmp_path):
    path = tmp_path / "settings.ini"
    path.write_text("[Widgets]\nEnabledSkins=circle\n", encoding="utf-8")

    assert WidgetSettingsManager(path).read_settings().enabled_skins == ("circle",)
