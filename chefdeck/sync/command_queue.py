import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Set, Tuple
from chefdeck.core.config import settings
from chefdeck.sync.clock import Clock

logger = logging.getLogger(__name__)

Dispatch = Callable[[Hashable, Any], Awaitable[None]]


class ItemCommandQueue:
    """
    Debounced per-key commands.

    issue() replaces whatever is still waiting for the same key, so only the
    last value of a burst is dispatched, once the key has been quiet for
    `delay` seconds. A command that has already been dispatched is never
    cancelled.
    """

    def __init__(self, dispatch: Dispatch, delay: Optional[float] = None, clock: Optional[Clock] = None):
        self._dispatch = dispatch
        self.delay = settings.DEBOUNCE_SECONDS if delay is None else delay
        self.clock = clock or Clock()
        self._pending: Dict[Hashable, Tuple[asyncio.Task, Any]] = {}
        self._inflight: Set[asyncio.Task] = set()

    def issue(self, key: Hashable, value: Any) -> None:
        self.cancel(key)
        task = asyncio.get_running_loop().create_task(self._wait_and_dispatch(key, value))
        self._pending[key] = (task, value)

    def cancel(self, key: Hashable) -> bool:
        entry = self._pending.pop(key, None)
        if entry is None:
            return False
        entry[0].cancel()
        return True

    def cancel_where(self, predicate: Callable[[Hashable], bool]) -> List[Tuple[Hashable, Any]]:
        """Cancel every waiting command whose key matches; returns what was dropped"""
        dropped = []
        for key in [k for k in self._pending if predicate(k)]:
            _, value = self._pending[key]
            self.cancel(key)
            dropped.append((key, value))
        return dropped

    def is_pending(self, key: Hashable) -> bool:
        return key in self._pending

    def has_pending(self) -> bool:
        return bool(self._pending)

    @property
    def busy(self) -> bool:
        return bool(self._inflight)

    async def flush(self) -> None:
        """Dispatch everything still waiting without the quiet period, then wait for it"""
        for key in list(self._pending):
            task, value = self._pending.pop(key)
            task.cancel()
            self._start(key, value)
        await self.drain()

    async def drain(self) -> None:
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _wait_and_dispatch(self, key: Hashable, value: Any) -> None:
        await self.clock.sleep(self.delay)
        entry = self._pending.get(key)
        if entry is None or entry[0] is not asyncio.current_task():
            return
        del self._pending[key]
        self._start(key, value)

    def _start(self, key: Hashable, value: Any) -> None:
        task = asyncio.get_running_loop().create_task(self._run(key, value))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _run(self, key: Hashable, value: Any) -> None:
        try:
            await self._dispatch(key, value)
        except Exception as e:
            logger.exception(f"❌ Command for {key} failed: {str(e)}")
