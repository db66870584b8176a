from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel

from .constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_PROCESSING_SECONDS,
    DEFAULT_POLL_INTERVAL,
)


class DeliveryConfig(BaseModel):
    """Outbound email/SMS/Slack hand-off settings."""

    backend: Literal["logging", "inmemory"] = "logging"


class WorkerConfig(BaseModel):
    """Settings for the periodic enrollment driver."""

    batch_size: int = DEFAULT_BATCH_SIZE
    max_processing_seconds: float = DEFAULT_MAX_PROCESSING_SECONDS
    poll_interval: float = DEFAULT_POLL_INTERVAL
    max_backoff_attempts: int = 5


class FunnelflowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    delivery: DeliveryConfig = DeliveryConfig()
    worker: WorkerConfig = WorkerConfig()
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> FunnelflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to FUNNELFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("FUNNELFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = FunnelflowConfig(**data)
    else:
        config = FunnelflowConfig()

    env_db_url = os.getenv("FUNNELFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_log_level = os.getenv("LOG_LEVEL")
    if env_log_level:
        config.log_level = env_log_level.upper()
    return config
