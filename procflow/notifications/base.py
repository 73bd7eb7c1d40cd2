"""Base notifier interface for assignment and completion notices."""

from __future__ import annotations

import abc
from typing import Optional

from ..contracts import Notification
from ..enums import NotificationKind


class BaseNotifier(metaclass=abc.ABCMeta):
    """Abstract delivery channel for run notifications.

    Delivery is fire-and-forget from the engine's point of view: callers log
    failures and carry on.
    """

    async def connect(self) -> None:
        """Open connection to the backend (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to the backend (no-op by default)."""
        pass

    @abc.abstractmethod
    async def publish(self, notification: Notification) -> None:
        """Deliver one notification to its recipient."""
        raise NotImplementedError

    async def emit_assignment(
        self, user_id: str, run_id: str, step_id: Optional[str], message: str = ""
    ) -> None:
        await self.publish(
            Notification(
                kind=NotificationKind.ASSIGNMENT,
                recipient_id=user_id,
                run_id=run_id,
                step_id=step_id,
                title="New task assigned",
                message=message,
            )
        )

    async def emit_completion(self, user_id: str, run_id: str, message: str = "") -> None:
        await self.publish(
            Notification(
                kind=NotificationKind.COMPLETION,
                recipient_id=user_id,
                run_id=run_id,
                title="Procedure completed",
                message=message,
            )
        )
