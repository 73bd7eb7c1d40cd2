"""Redis notifier: one list per recipient."""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

try:
    import redis.asyncio as redis
except ImportError:
    redis = None

from ..contracts import Notification
from .base import BaseNotifier

logger = logging.getLogger(__name__)


class RedisNotifier(BaseNotifier):
    """Push notifications onto ``<prefix>:<recipient>`` Redis lists."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        prefix: str = "procflow:notifications",
    ) -> None:
        if redis is None:
            raise ImportError("redis package is required for RedisNotifier")

        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.prefix = prefix
        self._redis: Optional[Any] = None

    def key_for(self, recipient_id: str) -> str:
        return f"{self.prefix}:{recipient_id}"

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, notification: Notification) -> None:
        if not self._redis:
            await self.connect()
        await self._redis.lpush(self.key_for(notification.recipient_id), notification.to_json())

    async def inbox(self, recipient_id: str, limit: int = 50) -> List[Notification]:
        """Most recent notifications for ``recipient_id``, newest first."""
        if not self._redis:
            await self.connect()
        raw_items = await self._redis.lrange(self.key_for(recipient_id), 0, limit - 1)
        notifications: List[Notification] = []
        for raw in raw_items:
            try:
                notifications.append(Notification.from_json(raw))
            except (json.JSONDecodeError, ValueError) as e:
                logger.warning(f"Skipping unreadable notification for {recipient_id}: {e}")
        return notifications
