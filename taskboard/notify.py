"""
Notification sink for user-facing messages.

The board calls success() / error() and never looks at the result.
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Deque, List, Optional

from .schema import utc_now

logger = logging.getLogger("taskboard.notify")


@dataclass
class Notification:
    level: str        # "success" | "error"
    message: str
    detail: str = ""
    timestamp: datetime = field(default_factory=utc_now)


class LoggingNotifier:
    """Logs every message and keeps the most recent ones for display."""

    def __init__(self, maxlen: int = 100, forward: Optional[Callable[[Notification], None]] = None):
        self.history: Deque[Notification] = deque(maxlen=maxlen)
        self.forward = forward

    def success(self, message: str) -> None:
        logger.info(message)
        self._record(Notification("success", message))

    def error(self, message: str, detail: str = "") -> None:
        if detail:
            logger.error(f"{message}: {detail}")
        else:
            logger.error(message)
        self._record(Notification("error", message, detail))

    def _record(self, note: Notification) -> None:
        self.history.append(note)
        if self.forward:
            try:
                self.forward(note)
            except Exception as e:
                logger.warning(f"Notification forward failed: {e}")

    def messages(self, level: Optional[str] = None) -> List[str]:
        return [n.message for n in self.history if level is None or n.level == level]
