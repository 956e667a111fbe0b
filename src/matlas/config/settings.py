"""Typed engine settings and Atlas credentials."""

import os
from typing import Dict, Any, Optional
import yaml
from pydantic import BaseModel, Field, ValidationError
from .paths import get_defaults_path
from .manager import load_config, _deep_merge
from ..utils.errors import ConfigError
from ..utils.logging import get_logger

logger = get_logger("config.settings")


class RetrySettings(BaseModel):
    """Exponential backoff parameters for transient failures."""
    max_retries: int = Field(default=3, ge=0)
    initial_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=30.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    jitter: float = Field(default=0.1, ge=0, le=1.0)
    rate_limit_initial_delay: float = Field(default=5.0, ge=0)


class TempUserSettings(BaseModel):
    default_ttl: int = Field(default=3600, gt=0)
    discovery_ttl: int = Field(default=300, gt=0)
    maintenance_ttl: int = Field(default=7200, gt=0)


class EngineSettings(BaseModel):
    """Tunables for discovery, planning and execution."""
    discovery_concurrency: int = Field(default=8, ge=1)
    max_concurrent_operations: int = Field(default=5, ge=1)
    page_size: int = Field(default=500, ge=1, le=500)
    service_call_timeout: float = Field(default=30.0, gt=0)
    operation_timeout: float = Field(default=300.0, gt=0)
    operation_timeouts: Dict[str, float] = Field(default_factory=dict)
    poll_interval: float = Field(default=15.0, gt=0)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    temp_user: TempUserSettings = Field(default_factory=TempUserSettings)
    mongo_client_cache_size: int = Field(default=8, ge=1)

    def timeout_for(self, kind: str) -> float:
        return float(self.operation_timeouts.get(kind, self.operation_timeout))


class Credentials(BaseModel):
    """Atlas programmatic API key pair plus run defaults."""
    public_key: str
    private_key: str
    base_url: str = "https://cloud.mongodb.com/api/atlas/v2"
    project_id: Optional[str] = None
    org_id: Optional[str] = None


def load_engine_settings(config: Optional[Dict[str, Any]] = None) -> EngineSettings:
    """
    Build EngineSettings from packaged defaults overlaid with user/project config.

    Raises:
        ConfigError: If the merged settings are invalid
    """
    defaults_path = get_defaults_path()
    try:
        with open(defaults_path, 'r', encoding='utf-8') as f:
            merged = (yaml.safe_load(f) or {}).get("engine", {})
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not load packaged defaults {defaults_path}: {e}")

    if config is None:
        config = load_config()
    override = config.get("engine") or {}
    if not isinstance(override, dict):
        raise ConfigError("'engine' section in config must be a mapping")
    _deep_merge(merged, override)

    try:
        return EngineSettings(**merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid engine settings: {e}")


def load_credentials(config: Optional[Dict[str, Any]] = None, project_id: Optional[str] = None) -> Credentials:
    """
    Resolve Atlas credentials.

    Priority (highest first): explicit arguments, environment variables,
    config file `atlas:` section.

    Raises:
        ConfigError: If no API key pair can be found
    """
    if config is None:
        config = load_config()
    atlas_cfg = config.get("atlas") or {}

    public_key = os.getenv("ATLAS_PUB_KEY") or os.getenv("ATLAS_API_KEY") or atlas_cfg.get("public_key")
    private_key = os.getenv("ATLAS_PRIV_KEY") or os.getenv("ATLAS_API_SECRET") or atlas_cfg.get("private_key")
    if not public_key or not private_key:
        raise ConfigError("Atlas API credentials not found")

    resolved_project = project_id or os.getenv("MATLAS_PROJECT_ID") or atlas_cfg.get("project_id")
    org_id = os.getenv("MATLAS_ORG_ID") or atlas_cfg.get("org_id")
    base_url = atlas_cfg.get("base_url") or Credentials.model_fields["base_url"].default

    logger.debug(f"Resolved credentials for public key {public_key[:4]}****")
    return Credentials(
        public_key=public_key,
        private_key=private_key,
        base_url=base_url,
        project_id=resolved_project,
        org_id=org_id,
    )


def resolve_project_id(project_id: Optional[str], config: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """Project id from flag, MATLAS_PROJECT_ID, or config file."""
    if project_id:
        return project_id
    env = os.getenv("MATLAS_PROJECT_ID")
    if env:
        return env
    if config is None:
        config = load_config()
    return (config.get("atlas") or {}).get("project_id")
