"""
Notification sink used by mutating operations.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)


class NotificationKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class Notifier(Protocol):
    """Fire-and-forget user notification (toast) contract."""

    def notify(self, kind: NotificationKind, message: str) -> None:
        ...


class LogNotifier:
    """Default notifier: writes notifications to the structured log."""

    def notify(self, kind: NotificationKind, message: str) -> None:
        if kind is NotificationKind.ERROR:
            logger.warning("notification", kind=kind.value, message=message)
        else:
            logger.info("notification", kind=kind.value, message=message)
