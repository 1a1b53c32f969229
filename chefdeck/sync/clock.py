import asyncio
import time


class Clock:
    """Time source for the sync client; tests substitute a manually advanced one."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0))
