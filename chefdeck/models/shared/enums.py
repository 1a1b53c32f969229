from enum import Enum

# Enums
class SheetStatus(str, Enum):
    ACTIVE = "active"          # Open for counting (locked or not)
    SUBMITTED = "submitted"    # Handed in, waiting for finalize

class NotificationLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
