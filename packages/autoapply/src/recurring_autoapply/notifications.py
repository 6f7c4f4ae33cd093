"""User-facing notifications emitted by the startup supervisor.

The engine never notifies; it returns results. The supervisor summarizes
them through a ``Notifier``. ``NotificationCenter`` buffers recent
notifications and fans them out to hooks, so a host UI can render them.
"""

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID, uuid4

import structlog

logger = structlog.get_logger(__name__)


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    WARNING = "warning"


@dataclass
class Notification:
    """A single message for the user."""

    level: NotificationLevel
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: UUID = field(default_factory=uuid4)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "type": self.level.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


class Notifier(Protocol):
    """Fire-and-forget notification sink."""

    def show_success(self, message: str) -> None: ...

    def show_error(self, message: str) -> None: ...

    def show_info(self, message: str) -> None: ...

    def show_warning(self, message: str) -> None: ...


class NullNotifier:
    """Discards every notification."""

    def show_success(self, message: str) -> None:
        pass

    def show_error(self, message: str) -> None:
        pass

    def show_info(self, message: str) -> None:
        pass

    def show_warning(self, message: str) -> None:
        pass


class LoggingNotifier:
    """Writes notifications to the structured log."""

    def __init__(self) -> None:
        self._logger = logger.bind(component="notifier")

    def show_success(self, message: str) -> None:
        self._logger.info("notification", level="success", message=message)

    def show_error(self, message: str) -> None:
        self._logger.error("notification", level="error", message=message)

    def show_info(self, message: str) -> None:
        self._logger.info("notification", level="info", message=message)

    def show_warning(self, message: str) -> None:
        self._logger.warning("notification", level="warning", message=message)


class NotificationCenter:
    """Buffers recent notifications and dispatches them to hooks.

    Usage:
        center = NotificationCenter()
        center.add_hook(lambda n: toast(n.message))
        center.show_success("Done")
    """

    def __init__(self, buffer_size: int = 50):
        self._buffer: deque[Notification] = deque(maxlen=buffer_size)
        self._hooks: list[Callable[[Notification], None]] = []
        self._logger = logger.bind(component="notification_center")

    @property
    def recent(self) -> list[Notification]:
        return list(self._buffer)

    def add_hook(self, hook: Callable[[Notification], None]) -> None:
        """Add a hook called synchronously for every notification."""
        self._hooks.append(hook)

    def remove_hook(self, hook: Callable[[Notification], None]) -> None:
        if hook in self._hooks:
            self._hooks.remove(hook)

    def clear(self) -> None:
        self._buffer.clear()

    def publish(self, notification: Notification) -> None:
        self._buffer.append(notification)
        for hook in list(self._hooks):
            try:
                hook(notification)
            except Exception as e:
                self._logger.error("notification_hook_error", error=str(e))

    def show_success(self, message: str) -> None:
        self.publish(Notification(NotificationLevel.SUCCESS, message))

    def show_error(self, message: str) -> None:
        self.publish(Notification(NotificationLevel.ERROR, message))

    def show_info(self, message: str) -> None:
        self.publish(Notification(NotificationLevel.INFO, message))

    def show_warning(self, message: str) -> None:
        self.publish(Notification(NotificationLevel.WARNING, message))
