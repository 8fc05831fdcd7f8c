"""Shared configuration utilities."""

import os
from pathlib import Path
from typing import Callable, Generic, TypeVar

import yaml

T = TypeVar("T")


def find_config_path(
    config_name: str | None,
    config_dir: Path,
    default_name: str = "prod",
    env_var: str | None = None,
) -> Path:
    """Resolve a config name or path to an existing YAML file.

    Args:
        config_name: Config name (without .yaml), a path to a YAML file,
            or None to use ``env_var`` / ``default_name``
        config_dir: Directory holding the named config files
        default_name: Name used when neither argument nor env var is set
        env_var: Environment variable consulted when config_name is None

    Returns:
        Path to the config file

    Raises:
        FileNotFoundError: If the resolved file doesn't exist
    """
    if config_name is None:
        config_name = os.environ.get(env_var, default_name) if env_var else default_name

    if config_name.endswith((".yaml", ".yml")):
        config_path = Path(config_name)
    else:
        config_path = config_dir / f"{config_name}.yaml"

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    return config_path


def load_yaml(path: Path) -> dict:
    """Load a YAML mapping, treating an empty file as {}."""
    with open(path) as f:
        data = yaml.safe_load(f)
    return data or {}


class ConfigSingleton(Generic[T]):
    """Lazily loaded global config with get/set/reset.

    Example:
        >>> _manager = ConfigSingleton(load_config)
        >>> get_config = _manager.get
        >>> set_config = _manager.set
        >>> reset_config = _manager.reset
    """

    def __init__(self, loader: Callable[[], T] | None = None):
        self._config: T | None = None
        self._loader = loader

    def get(self) -> T:
        """Get the config, loading it on first access."""
        if self._config is None:
            if self._loader is None:
                raise RuntimeError("No config loaded and no loader set")
            self._config = self._loader()
        return self._config

    def set(self, config: T) -> None:
        """Replace the config (used by the CLI and by tests)."""
        self._config = config

    def reset(self) -> None:
        """Drop the config so the next get() reloads it."""
        self._config = None
