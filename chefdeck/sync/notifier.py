import logging
from chefdeck.models.shared.enums import NotificationLevel

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    NotificationLevel.SUCCESS: logging.INFO,
    NotificationLevel.INFO: logging.INFO,
    NotificationLevel.WARNING: logging.WARNING,
    NotificationLevel.ERROR: logging.ERROR,
}


class Notifier:
    """Advisory user feedback (toasts). The default only writes to the log."""

    def notify(self, message: str, level: NotificationLevel = NotificationLevel.INFO) -> None:
        logger.log(_LOG_LEVELS[level], f"[{level.value}] {message}")
