from pathlib import Path

from core import settings


def test_linux_data_dir_with_xdg():
    env = {"XDG_DATA_HOME": "/tmp/xdg"}
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env=env,
        home=Path("/home/test"),
    )
    assert result == Path("/tmp/xdg") / settings.APP_NAME


def test_linux_data_dir_default_home():
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env={},
        home=Path("/home/test"),
    )
    assert result == Path("/home/test/.local/share") / settings.APP_NAME


def test_macos_data_dir():
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="darwin",
        env={},
        home=Path("/Users/test"),
    )
    expected = Path("/Users/test/Library/Application Support") / settings.APP_NAME
    assert result == expected


def test_windows_data_dir_appdata():
    env = {"APPDATA": "C:/Users/test/AppData/Roaming"}
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="win32",
        env=env,
        home=Path("C:/Users/test"),
    )
    expected = Path(env["APPDATA"]) / settings.APP_NAME
    assert result == expected


def test_data_dir_override_wins():
    env = {"TASKSYNC_DATA_DIR": "/srv/tasksync", "XDG_DATA_HOME": "/tmp/xdg"}
    result = settings.get_default_data_dir(settings.APP_NAME, platform="linux", env=env)
    assert result == Path("/srv/tasksync")


def test_runtime_paths_inside_data_dir():
    assert settings.DB_PATH.parent == settings.DATA_DIR
    assert settings.SESSION_PATH.parent == settings.DATA_DIR
    assert settings.SYNC_LOG_PATH.parent == settings.LOG_DIR
    assert settings.LOG_DIR.parent == settings.DATA_DIR
    assert settings.DATA_DIR.is_dir()


def test_remote_settings_configured_flag():
    assert settings.RemoteSettings(url="").configured is False
    assert settings.RemoteSettings(url="https://example.test").configured is True
