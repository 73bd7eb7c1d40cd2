"""In-memory notifier for tests and single-process use."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import Deque, Dict, List

from ..contracts import Notification
from .base import BaseNotifier


class InMemoryNotifier(BaseNotifier):
    """Keep notifications in per-recipient inboxes."""

    def __init__(self) -> None:
        self._inboxes: Dict[str, Deque[Notification]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    async def publish(self, notification: Notification) -> None:
        async with self._lock:
            self._inboxes[notification.recipient_id].append(notification)

    async def inbox(self, recipient_id: str) -> List[Notification]:
        """Notifications waiting for ``recipient_id``, oldest first."""
        async with self._lock:
            return list(self._inboxes.get(recipient_id, ()))

    async def drain(self, recipient_id: str) -> List[Notification]:
        """Return and clear the inbox of ``recipient_id``."""
        async with self._lock:
            pending = list(self._inboxes.pop(recipient_id, ()))
        return pending

    @property
    def sent(self) -> List[Notification]:
        return [n for inbox in self._inboxes.values() for n in inbox]
