"""Configuration module: engine settings, credentials and config files."""

from .manager import load_config, save_config
from .paths import get_user_config_path, get_project_config_path
from .settings import (
    EngineSettings,
    RetrySettings,
    TempUserSettings,
    Credentials,
    load_engine_settings,
    load_credentials,
    resolve_project_id,
)

__all__ = [
    "load_config",
    "save_config",
    "get_user_config_path",
    "get_project_config_path",
    "EngineSettings",
    "RetrySettings",
    "TempUserSettings",
    "Credentials",
    "load_engine_settings",
    "load_credentials",
    "resolve_project_id",
]
