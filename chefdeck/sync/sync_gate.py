from typing import Optional
from chefdeck.core.config import settings
from chefdeck.sync.clock import Clock


class SyncGate:
    """
    Short suppression window for background refresh after a local write.

    Every lock() restarts the window from now; it never accumulates.
    """

    def __init__(self, duration: Optional[float] = None, clock: Optional[Clock] = None):
        self.duration = settings.SYNC_GATE_SECONDS if duration is None else duration
        self.clock = clock or Clock()
        self._locked_until: Optional[float] = None

    def lock(self, duration: Optional[float] = None) -> None:
        window = self.duration if duration is None else duration
        self._locked_until = self.clock.now() + window

    def is_locked(self) -> bool:
        return self._locked_until is not None and self.clock.now() < self._locked_until

    def remaining(self) -> float:
        if not self.is_locked():
            return 0.0
        return self._locked_until - self.clock.now()
