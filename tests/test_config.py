"""Tests for tracker configuration loading."""

import pytest
import yaml

from ruuvitrack.tracker.config import (
    DEFAULT_URL,
    ConfigError,
    TrackerConfig,
    load_config,
)

ENV_VARS = [
    "RUUVITRACK_CONFIG",
    "RUUVITRACK_URL",
    "RUUVITRACK_TOKEN",
    "RUUVITRACK_FILTER",
    "RUUVITRACK_TIMEOUT",
    "RUUVITRACK_FAILURE_THRESHOLD",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def write_config(tmp_path, data: dict):
    path = tmp_path / "ruuvitrack.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


def test_defaults_without_any_file() -> None:
    config = load_config()

    assert config.url == DEFAULT_URL
    assert config.token is None
    assert config.filter == ()
    assert config.timeout is None
    assert config.base_interval == 600.0
    assert config.jitter_max == 10.0
    assert config.failure_threshold == 100
    assert config.benign_error_codes == ["sensor_already_updated"]
    assert config.ble.scanning_mode == "active"


def test_yaml_file_is_loaded_and_filter_normalized(tmp_path) -> None:
    path = write_config(
        tmp_path,
        {
            "url": "http://collector.local/api/data/",
            "token": "abc",
            "filter": ["aa:bb:cc:dd:ee:ff", "11:22:33:44:55:66"],
            "failure_threshold": 30,
            "ble": {"scanning_mode": "passive", "adapter": "hci1"},
            "log_level": "debug",
        },
    )

    config = load_config(path)

    assert config.url == "http://collector.local/api/data/"
    assert config.token == "abc"
    assert config.filter == ("AA:BB:CC:DD:EE:FF", "11:22:33:44:55:66")
    assert config.failure_threshold == 30
    assert config.ble.scanning_mode == "passive"
    assert config.ble.adapter == "hci1"
    assert config.log_level == "DEBUG"


def test_default_file_location_in_config_dir(tmp_path) -> None:
    (tmp_path / "config").mkdir()
    write_config(tmp_path / "config", {"token": "from-default-file"})

    assert load_config().token == "from-default-file"


def test_environment_overrides_file(monkeypatch, tmp_path) -> None:
    path = write_config(tmp_path, {"token": "file", "timeout": 10})
    monkeypatch.setenv("RUUVITRACK_TOKEN", "env")
    monkeypatch.setenv("RUUVITRACK_FILTER", "aa:bb, cc:dd")
    monkeypatch.setenv("RUUVITRACK_TIMEOUT", "30")

    config = load_config(path)

    assert config.token == "env"
    assert config.filter == ("AA:BB", "CC:DD")
    assert config.timeout == 30.0


def test_zero_timeout_means_run_forever(monkeypatch, tmp_path) -> None:
    path = write_config(tmp_path, {"timeout": 0})

    assert load_config(path).timeout is None

    monkeypatch.setenv("RUUVITRACK_TIMEOUT", "0")
    assert load_config(overrides={"timeout": 45}).timeout == 45.0
    assert load_config().timeout is None
    assert load_config(path, {"timeout": 0.0}).timeout is None


def test_explicit_overrides_win(monkeypatch) -> None:
    monkeypatch.setenv("RUUVITRACK_TOKEN", "env")

    config = load_config(overrides={"token": "cli", "filter": ["ee:ff"], "url": None})

    assert config.token == "cli"
    assert config.filter == ("EE:FF",)
    assert config.url == DEFAULT_URL


def test_config_path_from_environment(monkeypatch, tmp_path) -> None:
    path = write_config(tmp_path, {"failure_threshold": 7})
    monkeypatch.setenv("RUUVITRACK_CONFIG", path)

    assert load_config().failure_threshold == 7


def test_missing_explicit_file_is_an_error(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


@pytest.mark.parametrize(
    "data",
    [
        {"jitter_max": 700, "base_interval": 600},
        {"base_interval": -1},
        {"timeout": -5},
        {"failure_threshold": 0},
        {"ble": {"scanning_mode": "loud"}},
        {"request_timeout": 0},
        {"timeout": "soon"},
    ],
)
def test_invalid_values_are_rejected(tmp_path, data) -> None:
    path = write_config(tmp_path, data)

    with pytest.raises(ConfigError):
        load_config(path)


def test_unknown_override_is_rejected() -> None:
    config = TrackerConfig()

    with pytest.raises(ConfigError):
        config.apply_overrides({"colour": "blue"})
