"""Non-blocking user notifications (toasts)."""
from __future__ import annotations

import logging

logger = logging.getLogger("replied.notify")


class Notifier:
    """Base notifier: records through logging only.

    The terminal UI swaps in a notifier that shows toasts; controllers only
    ever talk to this interface.
    """

    def show(self, message: str, severity: str = "information") -> None:
        level = logging.WARNING if severity == "error" else logging.INFO
        logger.log(level, "[%s] %s", severity, message)

    def info(self, message: str) -> None:
        self.show(message, "information")

    def success(self, message: str) -> None:
        self.show(message, "success")

    def warning(self, message: str) -> None:
        self.show(message, "warning")

    def error(self, message: str) -> None:
        self.show(message, "error")
