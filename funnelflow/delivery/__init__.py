"""Delivery factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import FunnelflowConfig, load_config
from .base import BaseDelivery, EmailMessage, SmsMessage, UserNotification
from .inmemory import InMemoryDelivery
from .log import LoggingDelivery


def get_delivery(
    backend: Optional[str] = None, config: Optional[FunnelflowConfig] = None
) -> BaseDelivery:
    """Factory function to get the configured delivery backend."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("FUNNELFLOW_DELIVERY")
        or config.delivery.backend
    ).lower()

    if backend == "logging":
        return LoggingDelivery()
    elif backend == "inmemory":
        return InMemoryDelivery()
    else:
        raise ValueError(f"Unsupported delivery backend: {backend}")


__all__ = [
    "BaseDelivery",
    "EmailMessage",
    "SmsMessage",
    "UserNotification",
    "InMemoryDelivery",
    "LoggingDelivery",
    "get_delivery",
]
