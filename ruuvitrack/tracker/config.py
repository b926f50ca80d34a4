"""Configuration for the RuuviTag tracker."""

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple

from ruuvitrack.shared.config import load_yaml_config

from .identity_filter import normalize_allow_list

DEFAULT_URL = "https://anturi.nuudeli.com/api/data/"
SCANNING_MODES = ("active", "passive")


class ConfigError(ValueError):
    """Invalid or incomplete tracker configuration."""


@dataclass
class BLEConfig:
    """BLE scanner settings."""
    scanning_mode: str = "active"
    adapter: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "BLEConfig":
        return cls(
            scanning_mode=data.get("scanning_mode", "active"),
            adapter=data.get("adapter"),
        )


@dataclass
class TrackerConfig:
    """Tracker settings."""

    # Endpoint
    url: str = DEFAULT_URL
    token: Optional[str] = None
    request_timeout: float = 10.0  # seconds

    # Sensors to forward; empty means all
    filter: Tuple[str, ...] = ()

    # Run for this many seconds, then exit; None runs forever
    timeout: Optional[float] = None

    # Throttling
    base_interval: float = 600.0  # seconds between deliveries per sensor
    jitter_max: float = 10.0

    # Backoff and circuit breaker
    backoff_base: float = 1.0
    backoff_cap: float = 24 * 60 * 60.0
    failure_threshold: int = 100
    benign_error_codes: List[str] = field(
        default_factory=lambda: ["sensor_already_updated"]
    )

    ble: BLEConfig = field(default_factory=BLEConfig)

    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict) -> "TrackerConfig":
        """Create config from dictionary."""
        defaults = cls()
        return cls(
            url=data.get("url", defaults.url),
            token=data.get("token"),
            request_timeout=float(data.get("request_timeout", defaults.request_timeout)),
            filter=normalize_allow_list(_as_list(data.get("filter"))),
            timeout=_optional_timeout(data.get("timeout")),
            base_interval=float(data.get("base_interval", defaults.base_interval)),
            jitter_max=float(data.get("jitter_max", defaults.jitter_max)),
            backoff_base=float(data.get("backoff_base", defaults.backoff_base)),
            backoff_cap=float(data.get("backoff_cap", defaults.backoff_cap)),
            failure_threshold=int(data.get("failure_threshold", defaults.failure_threshold)),
            benign_error_codes=_as_list(
                data.get("benign_error_codes", defaults.benign_error_codes)
            ),
            ble=BLEConfig.from_dict(data.get("ble") or {}),
            log_level=str(data.get("log_level", defaults.log_level)).upper(),
        )

    def apply_overrides(self, overrides: Dict[str, Any]) -> None:
        """Apply non-None values from the environment or command line."""
        names = {f.name for f in fields(self)}
        for key, value in overrides.items():
            if value is None:
                continue
            if key not in names:
                raise ConfigError(f"Unknown setting: {key}")
            if key == "filter":
                value = normalize_allow_list(_as_list(value))
            elif key == "timeout":
                value = _optional_timeout(value)
            elif key in ("base_interval", "jitter_max", "request_timeout"):
                value = float(value)
            elif key == "failure_threshold":
                value = int(value)
            elif key == "log_level":
                value = str(value).upper()
            setattr(self, key, value)

    def validate(self) -> None:
        """Check settings for consistency.

        Raises:
            ConfigError: If any setting is out of range.
        """
        if not self.url:
            raise ConfigError("url must not be empty")
        if self.base_interval < 0:
            raise ConfigError("base_interval must not be negative")
        if self.jitter_max < 0:
            raise ConfigError("jitter_max must not be negative")
        if self.jitter_max > self.base_interval:
            raise ConfigError("jitter_max must not exceed base_interval")
        if self.timeout is not None and self.timeout < 0:
            raise ConfigError("timeout must not be negative")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive")
        if self.backoff_base < 0 or self.backoff_cap < 0:
            raise ConfigError("backoff delays must not be negative")
        if self.failure_threshold < 1:
            raise ConfigError("failure_threshold must be at least 1")
        if self.ble.scanning_mode not in SCANNING_MODES:
            raise ConfigError(
                f"ble.scanning_mode must be one of {', '.join(SCANNING_MODES)}"
            )


def _as_list(value: Any) -> List[str]:
    """Accept a list, a comma separated string or None."""
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    items: List[str] = []
    for item in value:
        items.extend(_as_list(str(item)))
    return items


def _optional_timeout(value: Any) -> Optional[float]:
    """0 or empty means run forever."""
    if value is None or value == "":
        return None
    return float(value) or None


def env_overrides() -> Dict[str, Any]:
    """Settings taken from RUUVITRACK_* environment variables."""
    return {
        "url": os.environ.get("RUUVITRACK_URL"),
        "token": os.environ.get("RUUVITRACK_TOKEN"),
        "filter": os.environ.get("RUUVITRACK_FILTER"),
        "timeout": os.environ.get("RUUVITRACK_TIMEOUT") or None,
        "failure_threshold": os.environ.get("RUUVITRACK_FAILURE_THRESHOLD") or None,
        "log_level": os.environ.get("LOG_LEVEL"),
    }


def load_config(
    config_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> TrackerConfig:
    """Load configuration from YAML, environment and explicit overrides.

    Later sources win: defaults, then the YAML file, then RUUVITRACK_*
    environment variables (a .env file is honoured), then overrides.

    Args:
        config_path: Path to YAML config file. If not provided, uses
            RUUVITRACK_CONFIG or config/ruuvitrack.yaml when present.
        overrides: Values from the command line; None values are ignored.

    Returns:
        Validated TrackerConfig. A missing token is not an error here;
        the caller decides how to report it.

    Raises:
        ConfigError: If a value is invalid.
        FileNotFoundError: If an explicit config file doesn't exist.
    """
    data = load_yaml_config(config_path)
    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a mapping")

    try:
        config = TrackerConfig.from_dict(data)
        config.apply_overrides(env_overrides())
        config.apply_overrides(overrides or {})
    except ConfigError:
        raise
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}") from e

    config.validate()
    return config
