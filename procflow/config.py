from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

from .constants import DEFAULT_MAX_AUTO_STEPS


class RedisConfig(BaseModel):
    """Connection settings for the Redis notifier."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class NotificationConfig(BaseModel):
    """Where assignment and completion notifications are delivered."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()


class AutomationConfig(BaseModel):
    """Settings for executing automated steps."""

    executor_url: Optional[str] = None
    timeout: float = 30.0
    max_auto_steps: int = DEFAULT_MAX_AUTO_STEPS


class ProcflowConfig(BaseModel):
    """Top-level configuration model."""

    notifications: NotificationConfig = NotificationConfig()
    automation: AutomationConfig = AutomationConfig()
    database_url: Optional[str] = None


def load_config(path: Optional[str] = None) -> ProcflowConfig:
    """Load configuration from a YAML file.

    Args:
        path: Optional path to config file. Falls back to the PROCFLOW_CONFIG
            env variable or 'procflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("PROCFLOW_CONFIG", "procflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ProcflowConfig(**data)
    else:
        config = ProcflowConfig()

    env_db_url = os.getenv("PROCFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_executor = os.getenv("PROCFLOW_EXECUTOR_URL")
    if env_executor:
        config.automation.executor_url = env_executor
    return config
