"""Two-tier configuration manager (user + project override)."""

import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from .paths import get_user_config_path, get_project_config_path
from ..utils.errors import ConfigError
from ..utils.logging import get_logger

logger = get_logger("config.manager")


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load full config tree with project override.

    Args:
        config_path: Explicit config file; replaces the user config when given

    Returns:
        Configuration dictionary (project config overrides user config)
    """
    user_config_path = Path(config_path) if config_path else get_user_config_path()
    project_config_path = get_project_config_path()

    config: Dict[str, Any] = {}
    if config_path and not user_config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    if user_config_path.exists():
        config = _read_yaml(user_config_path)

    if project_config_path:
        _deep_merge(config, _read_yaml(project_config_path))
        logger.info(f"Loaded project config from {project_config_path}")

    return config


def save_config(config: Dict[str, Any], path: Optional[Path] = None) -> None:
    """
    Save config to specified path (defaults to user config).

    Args:
        config: Configuration dictionary to save
        path: Optional path to save to (defaults to user config)
    """
    if path is None:
        path = get_user_config_path()

    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
        logger.info(f"Saved config to {path}")
    except OSError as e:
        raise ConfigError(f"Failed to save config to {path}: {e}")


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {path}: {e}")
    except OSError as e:
        raise ConfigError(f"Could not read config file {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> None:
    """Deep merge override into base (mutates base)."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
