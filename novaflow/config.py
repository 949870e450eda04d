from __future__ import annotations

import os
from typing import Optional, Literal

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_PENDING_DISPLAY_CAP,
    DEFAULT_PENDING_SCAN_LIMIT,
    DEFAULT_POLL_INTERVAL,
)


class RedisConfig(BaseModel):
    """Configuration for Redis transport."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    """Change channel configuration settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()


class WorkflowConfig(BaseModel):
    """Artifact polling settings."""

    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)


class NotificationConfig(BaseModel):
    """Pending review badge settings."""

    scan_limit: int = Field(default=DEFAULT_PENDING_SCAN_LIMIT, gt=0)
    display_cap: int = Field(default=DEFAULT_PENDING_DISPLAY_CAP, gt=0)


class NovaflowConfig(BaseModel):
    """Top-level configuration model."""

    transport: TransportConfig = TransportConfig()
    workflow: WorkflowConfig = WorkflowConfig()
    notifications: NotificationConfig = NotificationConfig()
    database_url: Optional[str] = None


def load_config(path: Optional[str] = None) -> NovaflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to NOVAFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("NOVAFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = NovaflowConfig(**data)
    else:
        config = NovaflowConfig()

    env_db_url = os.getenv("NOVAFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
