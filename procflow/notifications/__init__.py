"""Notifier factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import ProcflowConfig, load_config
from .base import BaseNotifier
from .inmemory import InMemoryNotifier


def get_notifier(
    backend: Optional[str] = None, config: Optional[ProcflowConfig] = None
) -> BaseNotifier:
    """Factory function to get the configured notifier."""

    config = config or load_config()
    backend = (
        backend
        or os.getenv("PROCFLOW_NOTIFIER")
        or config.notifications.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryNotifier()
    elif backend == "redis":
        from .redis import RedisNotifier

        redis_conf = config.notifications.redis
        return RedisNotifier(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
        )
    else:
        raise ValueError(f"Unsupported notification backend: {backend}")


__all__ = ["BaseNotifier", "InMemoryNotifier", "get_notifier"]
