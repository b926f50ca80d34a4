"""Configuration loading utilities."""

import os
from pathlib import Path
from typing import Optional, Union

import yaml
from dotenv import load_dotenv


def get_config_path(
    config_name: Optional[str] = None,
    config_dir: Optional[Union[str, Path]] = None,
) -> Optional[Path]:
    """Get path to a configuration file.

    Args:
        config_name: Name of config file (without path). If None, uses
            RUUVITRACK_CONFIG when set, otherwise 'ruuvitrack.yaml'.
        config_dir: Directory containing config files. If None, uses
            the 'config' directory in the current working directory.

    Returns:
        Path to the configuration file, or None if no file exists there.
    """
    if config_name is None:
        env_path = os.getenv("RUUVITRACK_CONFIG")
        if env_path:
            return Path(env_path)
        config_name = "ruuvitrack.yaml"

    if config_dir is None:
        config_dir = Path.cwd() / "config"

    path = Path(config_dir) / config_name
    return path if path.exists() else None


def load_yaml_config(
    config_path: Optional[Union[str, Path]] = None,
    load_env: bool = True,
) -> dict:
    """Load YAML configuration file.

    Args:
        config_path: Path to config file. If None, uses get_config_path().
            A missing default file yields an empty dict; a missing
            explicit file is an error.
        load_env: Whether to load .env file first.

    Returns:
        Configuration dictionary.

    Raises:
        FileNotFoundError: If an explicit config file doesn't exist.
        yaml.YAMLError: If config file is invalid YAML.
    """
    if load_env:
        load_dotenv()

    if config_path is None:
        config_path = get_config_path()
        if config_path is None:
            return {}
    else:
        config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r") as f:
        return yaml.safe_load(f) or {}

